import os

import requests

HTTP_AUTH_USER = os.getenv("HTTP_AUTH_USER")
HTTP_AUTH_PASSWORD = os.getenv("HTTP_AUTH_PASSWORD")
MS_URL = os.getenv("MS_URL", "http://localhost:18826")

kwargs = {}
if HTTP_AUTH_USER and HTTP_AUTH_PASSWORD:
    kwargs["auth"] = (HTTP_AUTH_USER, HTTP_AUTH_PASSWORD)


class Client:
    def _url(self, path):
        return f"{MS_URL}{path}"

    def get(self, url, headers=None):
        assert url[0] == "/", "URL must start with /"
        return requests.get(self._url(url), headers=headers, timeout=60, **kwargs)

    def head(self, url, headers=None):
        assert url[0] == "/", "URL must start with /"
        return requests.head(self._url(url), headers=headers, timeout=60, **kwargs)


client = Client()
