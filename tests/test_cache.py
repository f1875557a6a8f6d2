import redis

from agendfy.cache import ReceiptStore


class DictRedis:
    def __init__(self):
        self.values = {}

    def exists(self, key):
        return int(key in self.values)

    def setex(self, key, ttl, value):
        self.values[key] = (ttl, value)


class DownRedis:
    def exists(self, key):
        raise redis.ConnectionError("Connection refused")

    def setex(self, key, ttl, value):
        raise redis.ConnectionError("Connection refused")


def test_receipts_are_stored_with_ttl():
    backend = DictRedis()
    store = ReceiptStore(lambda: backend)

    assert not store.exists("webhook_processed:evt_1")
    assert store.mark("webhook_processed:evt_1", 60)
    assert store.exists("webhook_processed:evt_1")
    assert backend.values["webhook_processed:evt_1"] == (60, "1")


def test_receipts_fail_open_when_redis_is_down():
    store = ReceiptStore(lambda: DownRedis())

    assert store.exists("webhook_processed:evt_1") is False
    assert store.mark("webhook_processed:evt_1", 60) is False


def test_receipts_without_redis_url():
    store = ReceiptStore(lambda: None)

    assert store.exists("webhook_processed:evt_1") is False
    assert store.mark("webhook_processed:evt_1", 60) is False
