class FakeHTTPXResponse:
    def __init__(self, json_data=None, status_code=200):
        self._json_data = json_data
        self.status_code = status_code

    def json(self):
        if self._json_data is None:
            raise ValueError("No JSON body")
        return self._json_data


class FakeHTTPXClient:
    """Stands in for ``httpx.Client`` and records every POST."""

    def __init__(self, response=None, error=None):
        self.response = response or FakeHTTPXResponse({"id": "msg_1"})
        self.error = error
        self.requests = []

    def __call__(self, *args, **kwargs):
        return self

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def post(self, url, json=None, headers=None):
        self.requests.append({"url": url, "json": json, "headers": headers})
        if self.error is not None:
            raise self.error
        return self.response
