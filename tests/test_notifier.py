from unittest.mock import AsyncMock
import pytest
from framework.config import settings
from framework.notification import notifier


@pytest.fixture
def smtp(monkeypatch):
    send = AsyncMock()
    monkeypatch.setattr(notifier.aiosmtplib, "send", send)
    monkeypatch.setattr(settings, "NOTIFICATION_DRIVER", "email")
    monkeypatch.setattr(settings, "SMTP_HOST", "smtp.nekovi.test")
    monkeypatch.setattr(settings, "SMTP_USER", "shop@nekovi.test")
    monkeypatch.setattr(settings, "SMTP_PASSWORD", "app-password")
    monkeypatch.setattr(settings, "SMTP_FROM", None)
    return send


async def test_mock_driver_only_logs(monkeypatch):
    monkeypatch.setattr(settings, "NOTIFICATION_DRIVER", "mock")

    assert await notifier.notify_user_registered("rin@nekovi.test", "rin") is True
    assert await notifier.notify_user_registered(None, "rin") is False


async def test_welcome_email_over_smtp(smtp):
    sent = await notifier.notify_user_registered("rin@nekovi.test", "rin", "Rin Tohsaka")

    assert sent is True
    message = smtp.call_args.args[0]
    assert message["To"] == "rin@nekovi.test"
    assert message["From"] == "shop@nekovi.test"
    assert "Rin Tohsaka" in message["Subject"]
    assert settings.SHOP_URL in message.get_content()
    assert smtp.call_args.kwargs["hostname"] == "smtp.nekovi.test"


async def test_smtp_failure_is_reported_not_raised(smtp):
    smtp.side_effect = OSError("connection refused")

    assert await notifier.notify_user_registered("rin@nekovi.test", "rin") is False


async def test_unconfigured_smtp_drops_email(smtp, monkeypatch):
    monkeypatch.setattr(settings, "SMTP_PASSWORD", None)

    assert await notifier.send_email("rin@nekovi.test", "Hello", ["hi"]) is False
    smtp.assert_not_awaited()
