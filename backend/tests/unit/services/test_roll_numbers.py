import re

from cdc_admin.services.student_service import next_roll_number, temporary_student_id


def test_empty_batch_starts_at_one():
    assert next_roll_number([]) == "1"


def test_fills_the_first_gap():
    assert next_roll_number(["1", "2", "4"]) == "3"


def test_continues_after_contiguous_rolls():
    assert next_roll_number(["1", "2", "3"]) == "4"


def test_uses_trailing_digits_of_prefixed_rolls():
    assert next_roll_number(["ACAD-001", "ACAD-002", None, "  "]) == "3"


def test_ignores_rolls_without_digits():
    assert next_roll_number(["A", "B"]) == "1"


def test_temporary_student_id_format():
    assert re.fullmatch(r"TEMP-[0-9A-F]{8}", temporary_student_id())
