# CREATE FILE: utils/logging.py

import json
import os
import re
import time
from datetime import datetime, timezone
from typing import Dict, Any, Optional
from contextlib import contextmanager
import traceback


class StructuredLogger:
    """
    Structured JSON logger shared by the marketplace services.

    Every entry is a single JSON line on stdout carrying:
    - service, environment and version tags
    - a request ID when one is in scope
    - error type/message for failures
    - business context (order number, amounts) for checkout events
    """

    def __init__(self, service_name: str, environment: str = None):
        self.service_name = service_name
        self.environment = environment or os.getenv('ENVIRONMENT', 'development')
        self.version = os.getenv('SERVICE_VERSION', '1.0.0')
        self.enable_debug = os.getenv('DEBUG_LOGGING', 'false').lower() == 'true'

        self.base_fields = {
            'service': self.service_name,
            'environment': self.environment,
            'version': self.version,
            'process_id': os.getpid()
        }

    def _create_log_entry(self, level: str, message: str, **kwargs) -> Dict[str, Any]:
        entry = {
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'level': level.upper(),
            'message': message,
            **self.base_fields
        }

        for key, value in kwargs.items():
            if value is not None:
                entry[key] = value

        return entry

    def _log(self, level: str, message: str, **kwargs):
        log_entry = self._create_log_entry(level, message, **kwargs)
        print(json.dumps(log_entry, default=str))

    def debug(self, message: str, **kwargs):
        """Debug level logging (only if DEBUG_LOGGING is set)"""
        if self.enable_debug:
            self._log('debug', message, **kwargs)

    def info(self, message: str, **kwargs):
        self._log('info', message, **kwargs)

    def warning(self, message: str, error: Exception = None, **kwargs):
        self._log('warning', message, **self._error_fields(error), **kwargs)

    def error(self, message: str, error: Exception = None, **kwargs):
        """Error level logging with optional exception details"""
        self._log('error', message, **self._error_fields(error), **kwargs)

    def critical(self, message: str, error: Exception = None, **kwargs):
        fields = self._error_fields(error)
        if error:
            fields['stack_trace'] = traceback.format_exc()
        self._log('critical', message, **fields, **kwargs)

    def _error_fields(self, error: Optional[Exception]) -> Dict[str, Any]:
        if not error:
            return {}
        return {
            'error_type': type(error).__name__,
            'error_message': str(error),
            'stack_trace': traceback.format_exc() if self.enable_debug else None
        }

    # Checkout-specific helpers

    def business_event(self, event_type: str, request_id: str = None,
                      buyer_id: str = None, amount: float = None,
                      order_number: str = None, **kwargs):
        """Log checkout events (order placed, payment captured, refunds)"""
        self.info(
            f"Business event: {event_type}",
            action='business_event',
            event_type=event_type,
            request_id=request_id,
            buyer_id=buyer_id,
            amount=amount,
            order_number=order_number,
            **kwargs
        )

    def data_operation(self, operation: str, collection: str = None,
                      record_count: int = None, duration_ms: float = None,
                      request_id: str = None, **kwargs):
        """Log catalog/order store operations"""
        self.debug(
            f"Data operation: {operation}",
            action='data_operation',
            operation=operation,
            collection=collection,
            record_count=record_count,
            duration_ms=duration_ms,
            request_id=request_id,
            **kwargs
        )

    def api_call(self, target_service: str, endpoint: str, method: str = 'POST',
                duration_ms: float = None, status_code: int = None,
                request_id: str = None, **kwargs):
        """Log outbound calls to third-party APIs (payment gateway)"""
        level = 'info'
        if status_code and status_code >= 400:
            level = 'warning' if status_code < 500 else 'error'

        self._log(
            level,
            f"API call: {method} {target_service}{endpoint}",
            action='api_call',
            target_service=target_service,
            endpoint=endpoint,
            method=method,
            duration_ms=round(duration_ms, 2) if duration_ms is not None else None,
            status_code=status_code,
            request_id=request_id,
            **kwargs
        )

    @contextmanager
    def operation_context(self, operation_name: str, request_id: str = None):
        """Context manager for timed operations"""
        start_time = time.time()

        try:
            self.debug(f"Operation started: {operation_name}",
                      action='operation_start',
                      operation=operation_name,
                      request_id=request_id)
            yield
        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            self.error(f"Operation failed: {operation_name}",
                      error=e,
                      action='operation_error',
                      operation=operation_name,
                      duration_ms=duration_ms,
                      request_id=request_id)
            raise
        else:
            duration_ms = (time.time() - start_time) * 1000
            self.debug(f"Operation completed: {operation_name}",
                      action='operation_end',
                      operation=operation_name,
                      duration_ms=duration_ms,
                      request_id=request_id)


def get_logger(service_name: str) -> StructuredLogger:
    """Get a configured logger for a service"""
    return StructuredLogger(service_name)


_EMAIL_RE = re.compile(r'\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b')
# Philippine mobile numbers: +63 9xx xxx xxxx or 09xx xxx xxxx
_PHONE_RE = re.compile(r'(?:\+?63|0)9\d{2}[-.\s]?\d{3}[-.\s]?\d{4}\b')


def sanitize_pii(data: Any, redact_fields: set = None) -> Any:
    """
    Recursively redact buyer contact details before they reach the logs.

    Args:
        data: The data to sanitize
        redact_fields: Field names to redact outright (default: common PII fields)

    Returns:
        A sanitized copy of ``data``
    """
    if redact_fields is None:
        redact_fields = {
            'email', 'phone', 'contact_number', 'address', 'delivery_address',
            'card_number', 'password', 'token', 'api_key', 'secret'
        }

    if isinstance(data, dict):
        return {
            key: '[REDACTED]' if key.lower() in redact_fields
            else sanitize_pii(value, redact_fields)
            for key, value in data.items()
        }
    elif isinstance(data, list):
        return [sanitize_pii(item, redact_fields) for item in data]
    elif isinstance(data, str):
        if _EMAIL_RE.search(data):
            return '[REDACTED_EMAIL]'
        if _PHONE_RE.search(data):
            return '[REDACTED_PHONE]'
        return data
    else:
        return data
