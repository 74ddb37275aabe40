"""
Unit Tests for Request Logging
==============================
Tests cover:
- Path exclusion
- Log line contents (status, result count, error, client IP)
- Logging failures never fail the request
"""

from unittest.mock import MagicMock, patch

from django.test import RequestFactory, TestCase

from dataroom.middleware import RequestLoggingMiddleware


class RequestLoggingMiddlewareTests(TestCase):
    """Tests for the RequestLoggingMiddleware."""

    def setUp(self):
        self.factory = RequestFactory()
        self.middleware = RequestLoggingMiddleware(MagicMock())

    def respond_with(self, status_code=200, data=None):
        mock_response = MagicMock()
        mock_response.status_code = status_code
        mock_response.data = data
        self.middleware.get_response = MagicMock(return_value=mock_response)

    def test_should_log_api_endpoints(self):
        self.assertTrue(self.middleware.should_log('/api/files/'))
        self.assertTrue(self.middleware.should_log('/api/analytics/summary/'))

    def test_should_not_log_static_or_uploads(self):
        """Blob downloads and static assets are not API requests."""
        self.assertFalse(self.middleware.should_log('/static/js/app.js'))
        self.assertFalse(self.middleware.should_log('/uploads/1700000000000_ab12cd34_deck.pdf'))

    def test_excluded_path_is_not_logged(self):
        request = self.factory.get('/uploads/deck.pdf')
        self.respond_with()

        with patch('dataroom.middleware.logger') as mock_logger:
            self.middleware(request)

        mock_logger.info.assert_not_called()

    def test_success_is_logged_with_result_count(self):
        request = self.factory.get('/api/browse/', REMOTE_ADDR='127.0.0.1')
        self.respond_with(data={'success': True, 'count': 3, 'results': []})

        with self.assertLogs('dataroom.middleware', level='INFO') as logs:
            self.middleware(request)

        self.assertIn('GET /api/browse/ 200', logs.output[0])
        self.assertIn('results=3', logs.output[0])
        self.assertIn('ip=127.0.0.1', logs.output[0])

    def test_failure_is_logged_as_warning_with_error(self):
        request = self.factory.put('/api/files/')
        self.respond_with(status_code=404, data={'error': 'File not found'})

        with self.assertLogs('dataroom.middleware', level='WARNING') as logs:
            self.middleware(request)

        self.assertIn('PUT /api/files/ 404', logs.output[0])
        self.assertIn('error=File not found', logs.output[0])

    def test_client_ip_from_x_forwarded_for(self):
        request = self.factory.get('/api/files/', HTTP_X_FORWARDED_FOR='10.0.0.1, 10.0.0.2')

        self.assertEqual(self.middleware._get_client_ip(request), '10.0.0.1')

    def test_logging_failure_does_not_fail_request(self):
        request = self.factory.get('/api/files/')
        self.respond_with(data=[])

        with patch.object(self.middleware, '_log_request', side_effect=Exception('boom')):
            response = self.middleware(request)

        self.assertEqual(response.status_code, 200)
