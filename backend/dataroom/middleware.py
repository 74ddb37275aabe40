"""
Request Logging Middleware for monitoring API usage and latency.
"""
import json
import logging
import time

logger = logging.getLogger(__name__)


SLOW_REQUEST_MS = 2000


class RequestLoggingMiddleware:
    """
    Middleware writing one log line per API request.

    Captures:
    - HTTP method and endpoint
    - Request timing (duration in milliseconds)
    - Response status code
    - Result count (if available)
    - Error message (if failed)
    - Client IP

    Excludes static assets and uploaded blobs.
    """

    EXCLUDED_PATHS = ['/static/', '/uploads/']

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        if not self.should_log(request.path):
            return self.get_response(request)

        start_time = time.time()
        response = self.get_response(request)
        duration_ms = int((time.time() - start_time) * 1000)

        try:
            self._log_request(request, response, duration_ms)
        except Exception as e:
            logger.error(f"Failed to log request: {e}")

        if duration_ms > SLOW_REQUEST_MS:
            logger.warning(
                f"Very slow request detected: {request.method} {request.path} "
                f"took {duration_ms}ms"
            )

        return response

    def should_log(self, path):
        return not any(path.startswith(p) for p in self.EXCLUDED_PATHS)

    def _log_request(self, request, response, duration_ms):
        message = (
            f"{request.method} {request.path} {response.status_code} "
            f"{duration_ms}ms ip={self._get_client_ip(request)}"
        )

        result_count = self._extract_result_count(response)
        if result_count >= 0:
            message += f" results={result_count}"

        if response.status_code >= 400:
            message += f" error={self._extract_error_message(response)}"
            logger.warning(message)
        else:
            logger.info(message)

    def _extract_result_count(self, response):
        """
        Returns:
            int: Number of results, or -1 if not applicable
        """
        data = getattr(response, 'data', None)

        if isinstance(data, dict):
            if 'count' in data:
                return data['count']
            if 'results' in data:
                return len(data['results'])

        if isinstance(data, list):
            return len(data)

        return -1

    def _extract_error_message(self, response):
        data = getattr(response, 'data', None)
        if data is None:
            return None

        if isinstance(data, dict):
            for key in ('error', 'detail', 'message'):
                if key in data:
                    return str(data[key])

        try:
            return json.dumps(data)[:500]
        except (TypeError, ValueError):
            return None

    def _get_client_ip(self, request):
        """Client IP address, honouring the first X-Forwarded-For hop."""
        x_forwarded_for = request.META.get('HTTP_X_FORWARDED_FOR')
        if x_forwarded_for:
            ip = x_forwarded_for.split(',')[0].strip()
        else:
            ip = request.META.get('REMOTE_ADDR')

        return ip if ip else None
