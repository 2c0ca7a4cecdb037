import asyncio
import runpy
from pathlib import Path

import pytest

from helpers import add_enrollment, add_student, roll_numbers

SCRIPT = runpy.run_path(str(Path(__file__).resolve().parents[1] / "scripts" / "recalculate_rolls.py"))


def test_scope_options_must_come_together():
    with pytest.raises(SystemExit):
        SCRIPT["parse_args"](["--class-section-id", "6f1d0c36-6d35-4a43-9c8c-2f3c0b8f9a11"])


def test_reconciles_every_scope(database, school, capsys):
    async def scenario():
        for first_name, class_section_id in [("Zack", school.class_section_a_id), ("Aaron", school.class_section_a_id),
                                             ("Meera", school.class_section_b_id)]:
            student_id = await add_student(database, first_name, "Test")
            await add_enrollment(database, student_id, class_section_id, school.year_id)

        return await SCRIPT["run"](SCRIPT["parse_args"]([]), session_factory=database)

    assert asyncio.run(scenario()) == 0
    assert asyncio.run(roll_numbers(database, school.class_section_a_id, school.year_id)) == {"Aaron": 1, "Zack": 2}
    assert "2 scope(s), 0 failed" in capsys.readouterr().out


def test_single_scope_failure_sets_exit_code(broken_session_factory, school, capsys):
    args = SCRIPT["parse_args"]([
        "--class-section-id", str(school.class_section_a_id),
        "--academic-year-id", str(school.year_id),
    ])

    assert asyncio.run(SCRIPT["run"](args, session_factory=broken_session_factory)) == 1
    assert "FAIL" in capsys.readouterr().out
