import unittest
from unittest.mock import patch, Mock

import requests

from storage import retry
from storage.retry import fetch_with_retries, configure_retry, reset_retry


def _resp(status, content=b'', headers=None):
    resp = Mock()
    resp.status_code = status
    resp.content = content
    resp.headers = headers or {}
    return resp


class TestFetchWithRetries(unittest.TestCase):
    def setUp(self):
        self.addCleanup(reset_retry)
        sleeper = patch('storage.retry.time.sleep')
        self.sleep = sleeper.start()
        self.addCleanup(sleeper.stop)

    def test_success_first_try(self):
        with patch('storage.retry.requests.get', return_value=_resp(200, b'id\n1\n', {'Content-Type': 'text/csv'})) as mocked:
            res = fetch_with_retries('http://example.com/stories.csv', backoff_base=0, backoff_jitter=0)
        self.assertEqual(res['status'], 200)
        self.assertEqual(res['content'], b'id\n1\n')
        self.assertEqual(res['headers'], {'Content-Type': 'text/csv'})
        self.assertIsNone(res['error'])
        self.assertEqual(mocked.call_count, 1)
        self.sleep.assert_not_called()

    def test_retries_on_503_then_succeeds(self):
        responses = [_resp(503), _resp(200, b'ok')]
        with patch('storage.retry.requests.get', side_effect=responses) as mocked:
            res = fetch_with_retries('http://example.com/x', max_retries=3, backoff_base=0, backoff_jitter=0)
        self.assertEqual(res['status'], 200)
        self.assertEqual(mocked.call_count, 2)
        self.assertEqual(self.sleep.call_count, 1)

    def test_honors_retry_after(self):
        responses = [_resp(429, headers={'Retry-After': '7'}), _resp(200, b'ok')]
        with patch('storage.retry.requests.get', side_effect=responses):
            fetch_with_retries('http://example.com/x', max_retries=2, backoff_base=0, backoff_jitter=0)
        self.sleep.assert_called_once_with(7.0)

    def test_client_error_is_not_retried(self):
        with patch('storage.retry.requests.get', return_value=_resp(404, b'missing')) as mocked:
            res = fetch_with_retries('http://example.com/x', max_retries=5, backoff_base=0, backoff_jitter=0)
        self.assertEqual(res['status'], 404)
        self.assertEqual(mocked.call_count, 1)

    def test_connection_errors_exhaust_retries(self):
        with patch('storage.retry.requests.get', side_effect=requests.ConnectionError('boom')) as mocked:
            res = fetch_with_retries('http://example.com/x', max_retries=3, backoff_base=0, backoff_jitter=0)
        self.assertEqual(res['status'], 0)
        self.assertIsNone(res['content'])
        self.assertIn('boom', res['error'])
        self.assertEqual(mocked.call_count, 3)
        # no sleep after the final attempt
        self.assertEqual(self.sleep.call_count, 2)

    def test_configure_retry_sets_defaults(self):
        configure_retry(max_retries=2, backoff_base=0, backoff_jitter=0)
        with patch('storage.retry.requests.get', return_value=_resp(502)) as mocked:
            res = fetch_with_retries('http://example.com/x')
        self.assertEqual(res['status'], 502)
        self.assertEqual(mocked.call_count, 2)

    def test_explicit_argument_wins_over_runtime_config(self):
        configure_retry(max_retries=5)
        with patch('storage.retry.requests.get', return_value=_resp(502)) as mocked:
            fetch_with_retries('http://example.com/x', max_retries=1, backoff_base=0, backoff_jitter=0)
        self.assertEqual(mocked.call_count, 1)

    def test_parse_retry_after_http_date(self):
        self.assertEqual(retry._parse_retry_after('Wed, 21 Oct 2015 07:28:00 GMT'), 0.0)
        self.assertIsNone(retry._parse_retry_after('soon'))
        self.assertIsNone(retry._parse_retry_after(None))


if __name__ == '__main__':
    unittest.main()
