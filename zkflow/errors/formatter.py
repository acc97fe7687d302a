"""
Human-readable rendering of an ErrorEnvelope.

Output is a short aligned block, e.g.:

    ✖ FlowError [STATE]
      Message   : Withdrawal not ready: finalize params unavailable.

      Operation : withdrawals.finalize
      Context   : txHash=0xabc…
      Cause     : name=ValueError
                  message=...

Long values are elided in the middle so hashes keep both ends visible.
"""

from __future__ import annotations

import json
from typing import Any

from zkflow.errors.envelope import ErrorEnvelope, RevertDetail

_LABEL_WIDTH = 10
_INDENT = " " * 14


def _elide_middle(s: str, max_len: int = 96) -> str:
    if len(s) <= max_len:
        return s
    keep = max(10, (max_len - 1) // 2)
    return f"{s[:keep]}…{s[-keep:]}"


def _short_json(value: Any, max_len: int = 240) -> str:
    try:
        s = json.dumps(value, default=str, separators=(",", ":"))
    except (TypeError, ValueError):
        s = str(value)
    return _elide_middle(s, max_len)


def _kv(label: str, value: str) -> str:
    pad = " " if len(label) >= _LABEL_WIDTH else " " * (_LABEL_WIDTH - len(label))
    return f"{label}{pad}: {value}"


def _scalar(value: Any, max_len: int) -> str:
    if isinstance(value, (str, int, bool)):
        return str(value)
    return _short_json(value, max_len)


def _context_line(ctx: dict[str, Any]) -> str | None:
    tx_hash = ctx.get("txHash", ctx.get("l1TxHash", ctx.get("hash")))
    nonce = ctx.get("nonce")
    parts: list[str] = []
    if tx_hash is not None:
        parts.append(f"txHash={_scalar(tx_hash, 96)}")
    if nonce is not None:
        parts.append(f"nonce={_scalar(nonce, 48)}")
    if not parts:
        return None
    return "  " + _kv("Context", "  •  ".join(parts))


def _revert_lines(r: RevertDetail | None) -> list[str]:
    if r is None:
        return []
    lines = ["  " + _kv("Revert", f"selector={r.selector}")]
    if r.name:
        lines.append(f"{_INDENT}name={r.name}")
    if r.contract:
        lines.append(f"{_INDENT}contract={r.contract}")
    if r.fn:
        lines.append(f"{_INDENT}fn={r.fn}")
    if r.args:
        lines.append(f"{_INDENT}args={_short_json(list(r.args), 120)}")
    return lines


def _cause_lines(cause: dict[str, Any] | None) -> list[str]:
    if not cause:
        return []
    out: list[str] = []
    head: list[str] = []
    if cause.get("name") is not None:
        head.append(f"name={_scalar(cause['name'], 120)}")
    if cause.get("code") is not None:
        head.append(f"code={_scalar(cause['code'], 120)}")
    if head:
        out.append("  " + _kv("Cause", "  ".join(head)))
    if cause.get("message"):
        out.append(f"{_INDENT}message={_elide_middle(_scalar(cause['message'], 600), 600)}")
    if cause.get("data"):
        out.append(f"{_INDENT}data={_elide_middle(_short_json(cause['data'], 200), 200)}")
    return out


def format_envelope(e: ErrorEnvelope) -> str:
    """Render an envelope as an aligned multi-line block."""
    lines = [
        f"✖ FlowError [{e.type}]",
        "  " + _kv("Message", e.message),
        "",
        "  " + _kv("Operation", e.operation),
    ]

    ctx_line = _context_line(e.context)
    if ctx_line:
        lines.append(ctx_line)

    step = e.context.get("step")
    if isinstance(step, str):
        lines.append("  " + _kv("Step", step))

    revert = _revert_lines(e.revert)
    lines.extend(revert)

    causes = _cause_lines(e.cause)
    if causes:
        if not ctx_line and not revert:
            lines.append("")
        lines.extend(causes)

    return "\n".join(lines)
