"""
Tests for the HTTP digest listener.
"""

import unittest

import requests

from feed_collector.digest import HTML_MODE, MARKDOWN_MODE
from feed_collector.digest_server import PLACEHOLDER, DigestServer


class TestDigestServer(unittest.TestCase):

    def setUp(self):
        self.server = DigestServer(host="127.0.0.1", port=0, mode=HTML_MODE)
        self.server.start()
        self.base_url = f"http://127.0.0.1:{self.server.server_port}"

    def tearDown(self):
        self.server.stop()

    def test_placeholder_before_first_digest(self):
        response = requests.get(f"{self.base_url}/", timeout=5)

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.text, PLACEHOLDER)
        self.assertTrue(response.headers["Content-Type"].startswith("text/plain"))

    def test_serves_latest_digest(self):
        self.server.update("<html><body>first</body></html>")
        self.server.update("<html><body>second</body></html>")

        response = requests.get(f"{self.base_url}/?reload=1", timeout=5)

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.text, "<html><body>second</body></html>")
        self.assertEqual(response.headers["Content-Type"], "text/html; charset=utf-8")

    def test_other_paths_not_found(self):
        self.server.update("<html></html>")
        for path in ("/index.html", "/favicon.ico", "/feeds/1"):
            with self.subTest(path=path):
                self.assertEqual(requests.get(f"{self.base_url}{path}", timeout=5).status_code, 404)

    def test_non_ascii_body(self):
        self.server.update("Café résumé")

        response = requests.get(f"{self.base_url}/", timeout=5)

        self.assertEqual(response.content, "Café résumé".encode('utf-8'))
        self.assertEqual(int(response.headers["Content-Length"]), len(response.content))


class TestDigestServerConfiguration(unittest.TestCase):

    def test_markdown_content_type(self):
        server = DigestServer(port=0, mode=MARKDOWN_MODE)
        server.update("# Digest")
        self.assertEqual(server.snapshot(), ("# Digest", "text/markdown; charset=utf-8"))

    def test_port_in_use(self):
        first = DigestServer(host="127.0.0.1", port=0)
        first.start()
        try:
            second = DigestServer(host="127.0.0.1", port=first.server_port)
            with self.assertRaises(OSError):
                second.start()
        finally:
            first.stop()

    def test_stop_without_start(self):
        DigestServer(port=0).stop()


if __name__ == '__main__':
    unittest.main()
