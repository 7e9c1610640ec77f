import httpx

from championship import alerts
from championship.alerts import Notifier


def test_subscribe_and_unsubscribe():
    n = Notifier(webhook_url="")
    seen = []
    unsubscribe = n.subscribe(lambda e, p: seen.append(e))
    n.notify("trade", {"side": "buy"})
    unsubscribe()
    n.notify("trade", {"side": "sell"})
    assert seen == ["trade"]


def test_failing_listener_does_not_stop_others():
    n = Notifier(webhook_url="")
    seen = []

    def broken(event, payload):
        raise ValueError("nope")

    n.subscribe(broken)
    n.subscribe(lambda e, p: seen.append((e, p)))
    n.notify("reset")
    assert seen == [("reset", {})]


def test_webhook_delivery(monkeypatch):
    posted = []
    monkeypatch.setattr(alerts.httpx, "post", lambda url, json, timeout: posted.append((url, json)))
    Notifier(webhook_url="http://hooks.local/x").notify("week_advanced", {"new_week": 3})
    assert posted == [("http://hooks.local/x", {"type": "week_advanced", "new_week": 3})]


def test_webhook_failure_is_logged_not_raised(monkeypatch, caplog):
    def down(url, json, timeout):
        raise httpx.ConnectError("refused")

    monkeypatch.setattr(alerts.httpx, "post", down)
    Notifier(webhook_url="http://hooks.local/x").notify("reset")
    assert "Webhook delivery failed" in caplog.text


def test_deferred_events_wait_for_the_block():
    n = Notifier(webhook_url="")
    seen = []
    n.subscribe(lambda e, p: seen.append(e))
    with n.deferred():
        n.notify("trade")
        with n.deferred():
            n.notify("bank")
        assert seen == []
    assert seen == ["trade", "bank"]
    n.notify("reset")
    assert seen == ["trade", "bank", "reset"]


def test_deferred_events_are_per_thread():
    import threading

    n = Notifier(webhook_url="")
    seen = []
    n.subscribe(lambda e, p: seen.append(e))
    with n.deferred():
        t = threading.Thread(target=n.notify, args=("elsewhere",))
        t.start()
        t.join()
        assert seen == ["elsewhere"]
    assert seen == ["elsewhere"]
