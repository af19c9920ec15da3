from tokenvm.version import VERSION, Semantic


def test_current_version_is_0_0_1():
    assert VERSION.compare(Semantic(0, 0, 1)) == 0
    assert VERSION.compare(Semantic(0, 0, 2)) == -1
    assert str(VERSION) == "v0.0.1"


def test_str_formats_fields():
    assert str(Semantic(1, 2, 3)) == "v1.2.3"


def test_compare_equal():
    assert Semantic(1, 2, 3).compare(Semantic(1, 2, 3)) == 0


def test_compare_orders_by_major_then_minor_then_patch():
    assert Semantic(2, 0, 0).compare(Semantic(1, 9, 9)) == 1
    assert Semantic(1, 1, 0).compare(Semantic(1, 2, 0)) == -1
    assert Semantic(1, 2, 4).compare(Semantic(1, 2, 3)) == 1


def test_ordering_operators_agree_with_compare():
    older, newer = Semantic(0, 0, 1), Semantic(0, 1, 0)
    assert older < newer
    assert older.compare(newer) == -1
    assert sorted([newer, older]) == [older, newer]