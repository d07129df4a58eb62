"""Alert channel layer.

One emission fans out to up to three independent surfaces: visual (always
attempted), audio tone and haptic (attempted only for dual-channel alerts).
A surface that is absent, or that raises ChannelUnavailable because the
platform denied permission, is skipped. Any other surface failure is logged
and reported, and never stops the remaining channels from firing.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone, tzinfo
from typing import Any, Callable, Dict, List, Optional, Protocol, Sequence

import httpx

from carecue.priority import ALWAYS_DUAL, profile_for
from shared.contracts.enums import Channel, ErrorCode, Priority
from shared.contracts.models import NotificationPreferences


logger = logging.getLogger(__name__)

ALERT_TITLE = "CareCue"


class ChannelUnavailable(Exception):
    """The surface is missing on this platform or permission was denied."""


class VisualSurface(Protocol):
    def show(self, title: str, message: str, *, require_interaction: bool) -> None: ...


class ToneSurface(Protocol):
    def play(self, frequency_hz: int, duration_s: float) -> None: ...


class HapticSurface(Protocol):
    def vibrate(self, pattern_ms: Sequence[int]) -> None: ...


@dataclass
class EmissionReport:
    message: str
    priority: Priority
    delivered: List[Channel] = field(default_factory=list)
    skipped: List[Channel] = field(default_factory=list)
    failed: Dict[Channel, str] = field(default_factory=dict)

    @property
    def has_failures(self) -> bool:
        return bool(self.failed)


class LoggingVisualSurface:
    def show(self, title: str, message: str, *, require_interaction: bool) -> None:
        logger.info("%s alert: %s (sticky=%s)", title, message, require_interaction)


class WebhookVisualSurface:
    """Push the visual alert to a device gateway over HTTP."""

    def __init__(self, url: str, timeout: float = 10.0, client: Optional[httpx.Client] = None) -> None:
        self.url = url
        self._client = client or httpx.Client(timeout=timeout)

    def show(self, title: str, message: str, *, require_interaction: bool) -> None:
        try:
            response = self._client.post(
                self.url,
                json={
                    "title": title,
                    "body": message,
                    "require_interaction": require_interaction,
                    "sent_at": datetime.now(timezone.utc).isoformat(),
                },
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            if exc.response.status_code in (401, 403):
                raise ChannelUnavailable(f"gateway refused notifications: {exc.response.status_code}") from exc
            raise

    def close(self) -> None:
        self._client.close()


@dataclass
class RecordingSurface:
    """In-memory surface for tests; implements all three surface protocols."""

    calls: List[Dict[str, Any]] = field(default_factory=list)
    unavailable: bool = False
    fail_with: Optional[Exception] = None

    def _record(self, channel: Channel, payload: Dict[str, Any]) -> None:
        if self.unavailable:
            raise ChannelUnavailable(f"{channel.value} permission denied")
        if self.fail_with is not None:
            raise self.fail_with
        self.calls.append({"channel": channel, **payload})

    def show(self, title: str, message: str, *, require_interaction: bool) -> None:
        self._record(Channel.VISUAL, {"title": title, "message": message, "require_interaction": require_interaction})

    def play(self, frequency_hz: int, duration_s: float) -> None:
        self._record(Channel.AUDIO, {"frequency_hz": frequency_hz, "duration_s": duration_s})

    def vibrate(self, pattern_ms: Sequence[int]) -> None:
        self._record(Channel.HAPTIC, {"pattern_ms": list(pattern_ms)})


class AlertChannels:
    def __init__(
        self,
        visual: Optional[VisualSurface] = None,
        tone: Optional[ToneSurface] = None,
        haptic: Optional[HapticSurface] = None,
        preferences: Optional[NotificationPreferences] = None,
        local_tz: tzinfo = timezone.utc,
    ) -> None:
        self.visual = visual
        self.tone = tone
        self.haptic = haptic
        self.preferences = preferences or NotificationPreferences()
        self.local_tz = local_tz

    def emit(
        self,
        message: str,
        priority: Priority,
        dual_channel: bool,
        at: Optional[datetime] = None,
    ) -> EmissionReport:
        priority = Priority(priority)
        profile = profile_for(priority)
        report = EmissionReport(message=message, priority=priority)

        self._attempt(
            report,
            Channel.VISUAL,
            self.visual,
            lambda s: s.show(ALERT_TITLE, message, require_interaction=profile.requires_dismissal),
        )
        if not dual_channel:
            return report

        muted_audio, muted_haptic = self._muted_channels(priority, at)
        if muted_audio:
            report.skipped.append(Channel.AUDIO)
        else:
            self._attempt(report, Channel.AUDIO, self.tone, lambda s: s.play(profile.tone_hz, profile.tone_seconds))
        if muted_haptic:
            report.skipped.append(Channel.HAPTIC)
        else:
            self._attempt(report, Channel.HAPTIC, self.haptic, lambda s: s.vibrate(profile.vibration_ms))
        return report

    def close(self) -> None:
        for surface in (self.visual, self.tone, self.haptic):
            close = getattr(surface, "close", None)
            if callable(close):
                close()

    def _muted_channels(self, priority: Priority, at: Optional[datetime]) -> tuple[bool, bool]:
        if priority in ALWAYS_DUAL:
            return False, False
        prefs = self.preferences
        quiet = at is not None and prefs.in_quiet_hours(at.astimezone(self.local_tz).time())
        return (quiet or not prefs.enable_sound), (quiet or not prefs.enable_vibration)

    def _attempt(
        self,
        report: EmissionReport,
        channel: Channel,
        surface: Any,
        send: Callable[[Any], None],
    ) -> None:
        if surface is None:
            logger.debug("%s channel not available; skipping", channel.value)
            report.skipped.append(channel)
            return
        try:
            send(surface)
        except ChannelUnavailable as exc:
            logger.warning("%s channel unavailable: %s", channel.value, exc)
            report.skipped.append(channel)
        except Exception as exc:
            logger.error("%s: %s channel failed: %s", ErrorCode.SYSTEM_NOTIFICATION_FAILED.name, channel.value, exc)
            report.failed[channel] = str(exc)
        else:
            report.delivered.append(channel)
