import random

from services.quiz_service.badges import badge_catalog, derive_badges, unlocked_count


def _unlocked(total):
    return {b.id for b in derive_badges(total) if b.unlocked}


def test_thresholds() -> None:
    assert [b.required_correct for b in derive_badges(0)] == [50, 100, 200, 300]
    assert _unlocked(0) == set()
    assert _unlocked(49) == set()
    assert _unlocked(50) == {1}
    assert _unlocked(100) == {1, 2}
    assert _unlocked(299) == {1, 2, 3}
    assert _unlocked(10_000) == {1, 2, 3, 4}


def test_unlocked_sets_grow_with_total() -> None:
    sampler = random.Random(42)
    for _ in range(2000):
        a = sampler.randint(0, 1000)
        b = sampler.randint(a, 1000)
        assert _unlocked(a) <= _unlocked(b)
        assert unlocked_count(a) <= unlocked_count(b)


def test_unlocked_count_matches_derived_badges() -> None:
    for total in range(0, 400, 7):
        assert unlocked_count(total) == len(_unlocked(total))


def test_catalog_has_no_unlock_state() -> None:
    catalog = badge_catalog()
    assert len(catalog) == 4
    assert all("unlocked" not in b for b in catalog)
    assert derive_badges(120)[1].to_dict()["unlocked"] is True
