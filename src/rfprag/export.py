"""Export processing results as JSON or flattened CSV."""

from __future__ import annotations

from rfprag.models import RfpProcessingResult
from rfprag.serialization import RfpProcessingResultModel

CSV_HEADER = ("Question", "Answer", "Confidence", "Is Modified", "Original Answer")


def to_json(result: RfpProcessingResult, *, indent: int | None = 2) -> str:
    return RfpProcessingResultModel.from_domain(result).to_json(indent=indent)


def from_json(payload: str | bytes) -> RfpProcessingResult:
    return RfpProcessingResultModel.model_validate_json(payload).to_domain()


def escape_csv_value(value: str) -> str:
    """Quote ``value`` if it holds a comma, quote or newline, doubling inner quotes."""

    if not value:
        return ""
    if "," in value or '"' in value or "\n" in value:
        return '"' + value.replace('"', '""') + '"'
    return value


def to_csv(result: RfpProcessingResult) -> str:
    lines = [",".join(CSV_HEADER)]
    for question in result.questions:
        lines.append(
            ",".join(
                (
                    escape_csv_value(question.text),
                    escape_csv_value(question.answer),
                    f"{question.confidence:.2%}",
                    str(question.is_answer_edited),
                    escape_csv_value(question.original_answer),
                ),
            ),
        )
    return "\n".join(lines) + "\n"


def export_file_stem(result: RfpProcessingResult) -> str:
    return f"rfp_qa_{result.created_at:%Y%m%d_%H%M%S}"
