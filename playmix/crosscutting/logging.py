import json
import logging
from datetime import datetime, timezone
from typing import Dict, Any, Optional
from contextvars import ContextVar

# Context variables for correlation
mix_id_var: ContextVar[Optional[str]] = ContextVar('mix_id', default=None)
source_id_var: ContextVar[Optional[str]] = ContextVar('source_id', default=None)
stage_var: ContextVar[Optional[str]] = ContextVar('stage', default=None)


class StructuredFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        mix_id = mix_id_var.get()
        source_id = source_id_var.get()
        stage = stage_var.get()

        log_entry = {
            'ts': datetime.now(timezone.utc).isoformat().replace('+00:00', 'Z'),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'module': record.module,
            'function': record.funcName,
            'line': record.lineno
        }

        # Add correlation fields if available
        if mix_id:
            log_entry['mixId'] = mix_id
        if source_id:
            log_entry['sourceId'] = source_id
        if stage:
            log_entry['stage'] = stage

        if record.exc_info:
            log_entry['exception'] = self.formatException(record.exc_info)

        if getattr(record, 'fields', None):
            log_entry['fields'] = record.fields

        return json.dumps(log_entry, ensure_ascii=False, default=str)


class CorrelationContext:
    """Context manager for correlation data."""

    def __init__(self, mix_id: Optional[str] = None,
                 source_id: Optional[str] = None,
                 stage: Optional[str] = None):
        self.mix_id = mix_id
        self.source_id = source_id
        self.stage = stage
        self._tokens = {}

    def __enter__(self):
        """Set correlation context."""
        if self.mix_id is not None:
            self._tokens['mix_id'] = mix_id_var.set(self.mix_id)
        if self.source_id is not None:
            self._tokens['source_id'] = source_id_var.set(self.source_id)
        if self.stage is not None:
            self._tokens['stage'] = stage_var.set(self.stage)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Restore correlation context."""
        if 'stage' in self._tokens:
            stage_var.reset(self._tokens['stage'])
        if 'source_id' in self._tokens:
            source_id_var.reset(self._tokens['source_id'])
        if 'mix_id' in self._tokens:
            mix_id_var.reset(self._tokens['mix_id'])


def setup_logging(level: str = 'INFO',
                  log_file: Optional[str] = None,
                  structured: bool = True) -> logging.Logger:
    """Setup logging for the 'playmix' logger tree."""
    logger = logging.getLogger('playmix')
    logger.setLevel(getattr(logging, level.upper()))
    logger.handlers.clear()

    if structured:
        formatter = StructuredFormatter()
    else:
        formatter = logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger


def get_logger(name: str = 'playmix') -> logging.Logger:
    """Get logger with structured formatting."""
    return logging.getLogger(name)


def log_with_fields(logger: logging.Logger, level: str, message: str,
                    fields: Optional[Dict[str, Any]] = None, **kwargs):
    """Log message with additional fields."""
    merged = dict(fields or {})
    merged.update(kwargs)
    logger.log(getattr(logging, level.upper()), message, extra={'fields': merged})


def log_mix_start(logger: logging.Logger, mix_id: str, source_count: int,
                  strategy: str, **kwargs):
    """Log mix start."""
    with CorrelationContext(mix_id=mix_id, stage='start'):
        log_with_fields(logger, 'INFO', 'Mix started', {
            'source_count': source_count,
            'strategy': strategy,
            **kwargs
        })


def log_mix_complete(logger: logging.Logger, mix_id: str, item_count: int,
                     total_duration_ms: int, state: str, **kwargs):
    """Log mix completion."""
    with CorrelationContext(mix_id=mix_id, stage='complete'):
        log_with_fields(logger, 'INFO', 'Mix completed', {
            'item_count': item_count,
            'total_duration_ms': total_duration_ms,
            'state': state,
            **kwargs
        })


def log_error(logger: logging.Logger, message: str, error: Exception, **kwargs):
    """Log error with exception details."""
    log_with_fields(logger, 'ERROR', message, {
        'error_type': type(error).__name__,
        'error_message': str(error),
        **kwargs
    })
