from __future__ import annotations

import argparse
import json
import sys
from dataclasses import replace
from datetime import datetime, timezone
from pathlib import Path


def _ensure_backend_on_path() -> None:
    backend_dir = Path(__file__).resolve().parents[1]
    if str(backend_dir) not in sys.path:
        sys.path.insert(0, str(backend_dir))


def _parse_as_of(value: str | None) -> datetime | None:
    if not value:
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _write_markdown(result, out_path: Path) -> None:
    lines = [
        f"# Signals {result.generated_at.isoformat()}",
        "",
        f"Signals: {result.count}",
        "",
        "## Totals",
    ]
    for priority, count in sorted(result.totals.items(), key=lambda item: item[0].value):
        lines.append(f"- {priority.value}: {count}")
    lines.append("")
    lines.append("## Signals")
    for signal in result.signals:
        actions = ", ".join(a.type for a in signal.actions) or "-"
        lines.append(
            f"- **{signal.score}** [{signal.priority.value}] {signal.title} "
            f"({signal.entity_ref.provider}/{signal.entity_ref.connection_id}) actions: {actions}"
        )
    if result.errors:
        lines.append("")
        lines.append("## Connection errors")
        for error in result.errors:
            lines.append(f"- {error.connection_id} ({error.provider}): {error.error_type}: {error.message}")
    out_path.write_text("\n".join(lines) + "\n", encoding="utf-8")


def run_signal_generation(
    *,
    data_dir: Path,
    user_id: str,
    signal_type: str | None = None,
    priority: str | None = None,
    as_of: datetime | None = None,
):
    _ensure_backend_on_path()
    from pipelines.config import get_signals_config
    from pipelines.signal_generation import build_file_backed_service

    config = replace(get_signals_config(), data_dir=data_dir)
    service = build_file_backed_service(config)
    return service.generate_for_user(user_id, signal_type=signal_type, priority=priority, as_of=as_of)


def main() -> int:
    _ensure_backend_on_path()
    from pipelines.config import configure_logging, get_signals_config

    parser = argparse.ArgumentParser(description="Generate CRM signals for a user from file-backed stores.")
    parser.add_argument("--data-dir", help="Data directory (default: SIGNALS_DATA_DIR).")
    parser.add_argument("--user-id", required=True, help="User whose connections and rules are evaluated.")
    parser.add_argument("--type", dest="signal_type", help="Only keep signals of this type.")
    parser.add_argument("--priority", choices=("low", "medium", "high"), help="Only keep signals of this priority.")
    parser.add_argument("--as-of", help="ISO timestamp used for derived fields (default: now, UTC).")
    parser.add_argument("--output-dir", help="Write signals JSON + Markdown here instead of printing JSON.")
    args = parser.parse_args()

    config = get_signals_config()
    configure_logging(config.log_level)
    data_dir = Path(args.data_dir).resolve() if args.data_dir else config.data_dir

    result = run_signal_generation(
        data_dir=data_dir,
        user_id=args.user_id,
        signal_type=args.signal_type,
        priority=args.priority,
        as_of=_parse_as_of(args.as_of),
    )
    payload = result.model_dump(mode="json", by_alias=True)

    if not args.output_dir:
        print(json.dumps(payload, indent=2))
        return 0

    output_dir = Path(args.output_dir).resolve()
    output_dir.mkdir(parents=True, exist_ok=True)
    stamp = result.generated_at.strftime("%Y%m%dT%H%M%SZ")
    out_json = output_dir / f"signals_{args.user_id}_{stamp}.json"
    out_md = output_dir / f"signals_{args.user_id}_{stamp}.md"
    out_json.write_text(json.dumps(payload, indent=2), encoding="utf-8")
    _write_markdown(result, out_md)
    print(f"Wrote {out_json}")
    print(f"Wrote {out_md}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
