from datetime import datetime, time, timezone
import json
import unittest

import httpx

from carecue.channels import (
    ALERT_TITLE,
    AlertChannels,
    ChannelUnavailable,
    RecordingSurface,
    WebhookVisualSurface,
)
from shared.contracts.enums import Channel, Priority
from shared.contracts.models import NotificationPreferences


NIGHT = datetime(2026, 3, 2, 23, 30, tzinfo=timezone.utc)
NOON = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)


class AlertChannelsTests(unittest.TestCase):
    def setUp(self) -> None:
        self.visual = RecordingSurface()
        self.tone = RecordingSurface()
        self.haptic = RecordingSurface()
        self.channels = AlertChannels(visual=self.visual, tone=self.tone, haptic=self.haptic)

    def test_single_channel_alert_only_shows_visual(self) -> None:
        report = self.channels.emit("drink water", Priority.MEDIUM, dual_channel=False)
        self.assertEqual([Channel.VISUAL], report.delivered)
        self.assertEqual([], self.tone.calls)
        self.assertEqual([], self.haptic.calls)
        self.assertFalse(self.visual.calls[0]["require_interaction"])
        self.assertEqual(ALERT_TITLE, self.visual.calls[0]["title"])

    def test_dual_channel_uses_priority_profile(self) -> None:
        report = self.channels.emit("give dose", Priority.HIGH, dual_channel=True)
        self.assertEqual([Channel.VISUAL, Channel.AUDIO, Channel.HAPTIC], report.delivered)
        self.assertTrue(self.visual.calls[0]["require_interaction"])
        self.assertEqual(660, self.tone.calls[0]["frequency_hz"])
        self.assertEqual(1.0, self.tone.calls[0]["duration_s"])
        self.assertEqual([300, 100, 300], self.haptic.calls[0]["pattern_ms"])

    def test_unavailable_surface_is_skipped_without_blocking_others(self) -> None:
        self.tone.unavailable = True
        report = self.channels.emit("turn patient", Priority.CRITICAL, dual_channel=True)
        self.assertEqual([Channel.VISUAL, Channel.HAPTIC], report.delivered)
        self.assertEqual([Channel.AUDIO], report.skipped)
        self.assertFalse(report.has_failures)

    def test_failing_surface_is_reported_and_others_still_fire(self) -> None:
        self.visual.fail_with = RuntimeError("display crashed")
        report = self.channels.emit("give dose", Priority.HIGH, dual_channel=True)
        self.assertEqual({Channel.VISUAL: "display crashed"}, report.failed)
        self.assertEqual([Channel.AUDIO, Channel.HAPTIC], report.delivered)
        self.assertTrue(report.has_failures)

    def test_missing_surfaces_are_skipped(self) -> None:
        channels = AlertChannels(visual=self.visual)
        report = channels.emit("give dose", Priority.HIGH, dual_channel=True)
        self.assertEqual([Channel.VISUAL], report.delivered)
        self.assertEqual([Channel.AUDIO, Channel.HAPTIC], report.skipped)


def test_quiet_hours_mute_sound_and_vibration_for_routine_alerts():
    tone, haptic = RecordingSurface(), RecordingSurface()
    prefs = NotificationPreferences(quiet_hours_start=time(22, 0), quiet_hours_end=time(7, 0))
    channels = AlertChannels(visual=RecordingSurface(), tone=tone, haptic=haptic, preferences=prefs)

    night = channels.emit("night turn", Priority.MEDIUM, dual_channel=True, at=NIGHT)
    assert night.delivered == [Channel.VISUAL]
    assert night.skipped == [Channel.AUDIO, Channel.HAPTIC]

    day = channels.emit("day turn", Priority.MEDIUM, dual_channel=True, at=NOON)
    assert day.delivered == [Channel.VISUAL, Channel.AUDIO, Channel.HAPTIC]


def test_quiet_hours_never_mute_high_priority():
    tone = RecordingSurface()
    prefs = NotificationPreferences(
        enable_sound=False, quiet_hours_start=time(22, 0), quiet_hours_end=time(7, 0)
    )
    channels = AlertChannels(visual=RecordingSurface(), tone=tone, haptic=RecordingSurface(), preferences=prefs)
    report = channels.emit("give dose", Priority.HIGH, dual_channel=True, at=NIGHT)
    assert Channel.AUDIO in report.delivered
    assert tone.calls[0]["frequency_hz"] == 660


def test_disabled_vibration_skips_haptic_only():
    prefs = NotificationPreferences(enable_vibration=False)
    channels = AlertChannels(
        visual=RecordingSurface(), tone=RecordingSurface(), haptic=RecordingSurface(), preferences=prefs
    )
    report = channels.emit("bathroom", Priority.LOW, dual_channel=True)
    assert report.delivered == [Channel.VISUAL, Channel.AUDIO]
    assert report.skipped == [Channel.HAPTIC]


def test_webhook_surface_posts_alert_payload():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(202)

    client = httpx.Client(transport=httpx.MockTransport(handler))
    surface = WebhookVisualSurface("https://devices.example/alerts", client=client)
    surface.show(ALERT_TITLE, "give dose", require_interaction=True)

    assert len(seen) == 1
    body = json.loads(seen[0].content)
    assert body["title"] == ALERT_TITLE
    assert body["body"] == "give dose"
    assert body["require_interaction"] is True


def test_webhook_permission_denied_counts_as_unavailable():
    client = httpx.Client(transport=httpx.MockTransport(lambda request: httpx.Response(403)))
    surface = WebhookVisualSurface("https://devices.example/alerts", client=client)

    try:
        surface.show(ALERT_TITLE, "x", require_interaction=False)
    except ChannelUnavailable:
        pass
    else:
        raise AssertionError("expected ChannelUnavailable")

    report = AlertChannels(visual=surface).emit("x", Priority.LOW, dual_channel=False)
    assert report.skipped == [Channel.VISUAL]
    assert not report.has_failures


def test_webhook_server_error_is_reported_as_failure():
    client = httpx.Client(transport=httpx.MockTransport(lambda request: httpx.Response(500)))
    channels = AlertChannels(visual=WebhookVisualSurface("https://devices.example/alerts", client=client))
    report = channels.emit("x", Priority.LOW, dual_channel=False)
    assert Channel.VISUAL in report.failed
