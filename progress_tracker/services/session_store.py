"""
Session pointer storage for logged-in users
"""

from flask import session

SESSION_KEYS = ('uid', 'user_name', 'user_email', 'user_role', 'user_phone', 'user_standard')


class MemorySessionStore:
    """
    Process-local session pointer for single-user use outside a web app.
    Every caller of one instance shares the same login.
    """

    def __init__(self):
        self._data = {}

    def get(self, key, default=None):
        return self._data.get(key, default)

    def set_many(self, values, permanent=True):
        self._data.update(values)

    def clear(self):
        self._data.clear()


class FlaskSessionStore:
    """
    Session pointer kept in Flask's signed session cookie, one per browser.

    A permanent cookie survives browser restarts; otherwise it ends with the
    browser session. Only usable inside a request context.
    """

    def get(self, key, default=None):
        return session.get(key, default)

    def set_many(self, values, permanent=True):
        session.permanent = permanent
        for key, value in values.items():
            session[key] = value

    def clear(self):
        for key in SESSION_KEYS:
            session.pop(key, None)
