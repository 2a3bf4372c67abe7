from types import SimpleNamespace

from ratings import aggregate


def reviews(*ratings):
    return [SimpleNamespace(rating=r) for r in ratings]


def test_empty_set_is_zero():
    assert aggregate([]) == (0.0, 0)


def test_mean_of_five_four_three():
    assert aggregate(reviews(5, 4, 3)) == (4.0, 3)


def test_after_removing_the_five():
    assert aggregate(reviews(4, 3)) == (3.5, 2)


def test_rounds_to_one_decimal():
    assert aggregate(reviews(5, 4, 4)) == (4.3, 3)
    assert aggregate(reviews(5, 5, 4)) == (4.7, 3)


def test_half_rounds_up():
    # 13 / 4 == 3.25
    assert aggregate(reviews(4, 3, 3, 3)) == (3.3, 4)


def test_single_review():
    assert aggregate(reviews(1)) == (1.0, 1)
