from fakes import FakeStore, make_record
from restaurant_catalog.core.dedup import DedupResolver


def test_external_id_match_is_authoritative():
    store = FakeStore([make_record("Sushi Yama", external_id="p123")])
    resolver = DedupResolver(store)

    existing = resolver.resolve_existing(make_record("SUSHI YAMA - Boa Viagem", external_id="p123"))

    assert existing.external_id == "p123"
    assert store.name_queries == []


def test_word_order_variant_resolves_to_existing():
    store = FakeStore([make_record("Restaurante Costa")])
    resolver = DedupResolver(store)

    existing = resolver.resolve_existing(make_record("Costa Restaurante", external_id="p9"))

    assert existing.name == "Restaurante Costa"
    assert store.name_queries == ["Costa Restaurante", "Costa"]


def test_manual_entry_matches_provider_candidate_by_name():
    store = FakeStore([make_record("Restaurante Costa")])
    resolver = DedupResolver(store)

    assert resolver.resolve_existing(make_record("Restaurante Costa Ltda.", external_id="p1")) is not None


def test_genuinely_new_candidate():
    store = FakeStore([make_record("Temakeria Oishii")])
    assert DedupResolver(store).resolve_existing(make_record("Sushi Yama", external_id="p123")) is None


def test_different_external_ids_are_never_merged_by_name():
    store = FakeStore([make_record("Coco Bambu", external_id="branch-1")])
    assert DedupResolver(store).resolve_existing(make_record("Coco Bambu", external_id="branch-2")) is None


def test_distant_same_name_is_a_different_branch():
    store = FakeStore([make_record("Bode do Nô", latitude=-8.05, longitude=-34.90)])
    candidate = make_record("Bode do Nô", latitude=-8.28, longitude=-35.03)

    assert DedupResolver(store).resolve_existing(candidate) is None


def test_name_lookup_is_capped():
    store = FakeStore([make_record(f"Costa {i}") for i in range(15)])
    resolver = DedupResolver(store, name_limit=10)

    assert len(resolver._name_candidates("Costa Azul")) == 10


def test_blank_name_has_no_candidates():
    store = FakeStore([make_record("Costa")])
    assert DedupResolver(store).resolve_existing(make_record("   ")) is None
