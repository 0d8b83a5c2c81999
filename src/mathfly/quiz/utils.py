import json
import os
import tempfile

from pathlib import Path
from typing import Iterator, List, Sequence, Tuple


def iter_jsonl(lines: Sequence[str]) -> Iterator[Tuple[int, dict]]:
    """Yield ``(line_number, record)`` for each non-blank JSON line.

    Raises ``ValueError`` naming the 1-based line number when a line does
    not decode to a JSON object.
    """
    for number, line in enumerate(lines, start=1):
        line = line.strip()
        if not line:
            continue
        try:
            record = json.loads(line)
        except json.JSONDecodeError as exc:
            raise ValueError(f"line {number}: {exc.msg}") from exc
        if not isinstance(record, dict):
            raise ValueError(f"line {number}: expected a JSON object")
        yield number, record


def read_jsonl(path: Path) -> List[dict]:
    p = Path(path)
    if not p.exists():
        return []
    text = p.read_text(encoding="utf-8")
    return [record for _, record in iter_jsonl(text.splitlines())]


def write_jsonl(path: Path, records: Sequence[dict]) -> None:
    """Replace ``path`` with ``records`` without leaving a partial file.

    The records go to a sibling temp file which is then renamed over the
    target, so readers see either the old or the new content.
    """
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(
        prefix=f".{p.name}.", suffix=".tmp", dir=str(p.parent)
    )
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            for rec in records:
                fh.write(json.dumps(rec, ensure_ascii=False))
                fh.write("\n")
        os.replace(tmp_name, p)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise
