from __future__ import annotations

import json
from datetime import datetime, timezone

from rfprag.export import CSV_HEADER, escape_csv_value, export_file_stem, from_json, to_csv, to_json
from rfprag.models import ProcessingStatus, RfpProcessingResult, RfpQuestion


def _result() -> RfpProcessingResult:
    plain = RfpQuestion(text="What is your timeline?", embedding=(0.25, 0.5))
    plain.set_generated_answer("Two weeks.", 0.81)
    edited = RfpQuestion(text='Describe your "premium" plan, briefly?')
    edited.set_generated_answer("Line one\nLine two", 0.5)
    edited.edit_answer("Custom, answer")
    return RfpProcessingResult(
        file_name="rfp.pdf",
        extracted_text="What is your timeline?",
        questions=[plain, edited],
        processing_status=ProcessingStatus.COMPLETED,
        current_step="Completed",
        progress=100,
        created_at=datetime(2024, 3, 5, 14, 7, 9, tzinfo=timezone.utc),
        completed_at=datetime(2024, 3, 5, 14, 8, 0, tzinfo=timezone.utc),
    )


def test_escape_csv_value():
    assert escape_csv_value("") == ""
    assert escape_csv_value("plain") == "plain"
    assert escape_csv_value("a,b") == '"a,b"'
    assert escape_csv_value('say "hi"') == '"say ""hi"""'
    assert escape_csv_value("two\nlines") == '"two\nlines"'


def test_csv_rows():
    lines = to_csv(_result()).split("\n")
    assert lines[0] == ",".join(CSV_HEADER)
    assert lines[1] == "What is your timeline?,Two weeks.,81.00%,False,Two weeks."
    assert lines[2].startswith('"Describe your ""premium"" plan, briefly?","Custom, answer",50.00%,True,"Line one')


def test_json_export_is_camel_case_and_lossless():
    result = _result()
    payload = json.loads(to_json(result))
    assert payload["fileName"] == "rfp.pdf"
    assert payload["processingStatus"] == "Completed"
    assert payload["questions"][1]["isAnswerEdited"] is True
    assert payload["questions"][1]["originalAnswer"] == "Line one\nLine two"

    assert from_json(to_json(result)) == result


def test_export_file_stem_uses_creation_time():
    assert export_file_stem(_result()) == "rfp_qa_20240305_140709"
