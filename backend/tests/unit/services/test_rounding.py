from cdc_admin.utils.rounding import round_half_up, percentage


def test_halves_round_away_from_zero():
    assert round_half_up(2.5) == 3
    assert round_half_up(84.45, 1) == 84.5


def test_percentage_of_zero_is_zero():
    assert percentage(5, 0) == 0
    assert percentage(5, 0, 1) == 0.0


def test_percentage_precision():
    # 25 present out of 30 expected
    assert percentage(25, 30, 1) == 83.3
    assert percentage(1, 3) == 33
