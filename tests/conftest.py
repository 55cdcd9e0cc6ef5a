# tests/conftest.py
import datetime as dt

import pytest

NOW = dt.datetime(2026, 3, 1, 12, 0, 0, tzinfo=dt.timezone.utc)


def days_ago(days, now=NOW):
    return now - dt.timedelta(days=days)


class FakeContainer:
    """Serves pre-built pages keyed by continuation token."""

    name = "fake"

    def __init__(self, pages, fail_on=None):
        # pages: list of descriptor lists; tokens are "p1", "p2", ...
        self.pages = pages
        self.fail_on = fail_on
        self.list_calls = []
        self.deleted = []

    def list_page(self, token):
        self.list_calls.append(token)
        idx = 0 if token is None else int(token[1:])
        nxt = f"p{idx + 1}" if idx + 1 < len(self.pages) else None
        return list(self.pages[idx]), nxt

    def delete_object(self, name):
        if name == self.fail_on:
            raise RuntimeError(f"delete failed for {name}")
        self.deleted.append(name)


class StoredContainer:
    """In-memory container that really removes objects; pages by name marker."""

    name = "stored"

    def __init__(self, objects, page_size=2):
        self.objects = dict(objects)
        self.page_size = page_size
        self.list_calls = 0

    def list_page(self, token):
        self.list_calls += 1
        names = sorted(n for n in self.objects if token is None or n > token)
        chunk = names[:self.page_size]
        items = [{"name": n, "last_modified": self.objects[n]} for n in chunk]
        more = len(names) > self.page_size
        return items, (chunk[-1] if more else None)

    def delete_object(self, name):
        del self.objects[name]


@pytest.fixture
def clock():
    return lambda: NOW
