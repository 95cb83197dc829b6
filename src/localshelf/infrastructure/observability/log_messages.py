"""Structured log message templates for notable library events.

Hey future me - these turn the handful of events a user actually cares about into
scannable multi-line messages:

    ✅ Scan Complete: /music/rock
    ├─ Added: 12
    ├─ Updated: 3
    ├─ Skipped: 480
    └─ Duration: 4.2s

Routine per-file chatter stays a plain one-line f-string at DEBUG level.

Usage:
    from localshelf.infrastructure.observability.log_messages import LogMessages

    logger.info(LogMessages.scan_completed(folder="/music", added=3, ...))
"""

from dataclasses import dataclass
from typing import Any


@dataclass
class LogTemplate:
    """Icon + title + tree of fields + optional hint."""

    icon: str
    title: str
    fields: dict[str, str]
    hint: str | None = None

    def format(self, **kwargs: Any) -> str:
        """Render the template, filling {placeholders} from kwargs."""
        lines = [f"{self.icon} {self.title}"]

        field_items = list(self.fields.items())
        for i, (key, value_template) in enumerate(field_items):
            # Last field uses └─ instead of ├─
            prefix = "└─" if i == len(field_items) - 1 and not self.hint else "├─"
            try:
                value = value_template.format(**kwargs)
            except (KeyError, IndexError) as e:
                value = f"<missing: {e}>"
            lines.append(f"{prefix} {key}: {value}")

        if self.hint:
            try:
                hint_text = self.hint.format(**kwargs)
            except (KeyError, IndexError) as e:
                hint_text = f"<missing: {e}>"
            lines.append(f"└─ 💡 {hint_text}")

        return "\n".join(lines)


def _literal(value: Any) -> str:
    # Paths may contain braces, escape them so format() leaves them alone
    return str(value).replace("{", "{{").replace("}", "}}")


class LogMessages:
    """Standardized messages for scans, file failures, watch mode and connections."""

    @staticmethod
    def scan_completed(
        folder: str,
        added: int = 0,
        updated: int = 0,
        skipped: int = 0,
        errors: int = 0,
        aborted: bool = False,
        duration: float | None = None,
    ) -> str:
        """Format a scan summary."""
        if aborted:
            icon, title = "⏹️", "Scan Aborted"
        elif errors:
            icon, title = "⚠️", "Scan Complete With Errors"
        else:
            icon, title = "✅", "Scan Complete"

        fields = {
            "Added": str(added),
            "Updated": str(updated),
            "Skipped": str(skipped),
        }
        if errors:
            fields["Errors"] = str(errors)
        if duration is not None:
            fields["Duration"] = f"{duration:.1f}s"

        template = LogTemplate(
            icon=icon,
            title=f"{title}: {folder}",
            fields=fields,
            hint="Per-file errors are logged above as warnings" if errors else None,
        )
        return template.format()

    @staticmethod
    def file_operation_failed(
        operation: str,
        filename: str,
        error: str,
        hint: str | None = None,
    ) -> str:
        """Format a file operation failure message.

        Args:
            operation: Operation that failed (e.g., "Index", "Tag Write", "Art Cache Write")
            filename: File involved
            error: Error description
            hint: Troubleshooting hint
        """
        template = LogTemplate(
            icon="🔴",
            title=f"File {operation} Failed",
            fields={"File": _literal(filename), "Reason": _literal(error)},
            hint=_literal(hint) if hint else None,
        )
        return template.format()

    @staticmethod
    def watch_mode_changed(mode: str, folders: int, detail: str | None = None) -> str:
        """Format a live/poll mode transition."""
        fields = {"Folders": str(folders)}
        if detail:
            fields["Detail"] = _literal(detail)
        template = LogTemplate(
            icon="👀" if mode == "live" else "🕒",
            title=f"Library Watcher: {mode} mode",
            fields=fields,
        )
        return template.format()

    @staticmethod
    def connection_failed(
        service: str,
        target: str,
        error: str | None = None,
        hint: str | None = None,
    ) -> str:
        """Format a connection failure message."""
        fields = {"Service": _literal(service), "Target": _literal(target)}
        if error:
            fields["Reason"] = _literal(error)

        template = LogTemplate(
            icon="🔴",
            title=f"{service} Connection Failed",
            fields=fields,
            hint=_literal(hint) if hint else f"Check if {_literal(service)} is reachable",
        )
        return template.format()
