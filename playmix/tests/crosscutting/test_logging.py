import json
import logging
import os
import tempfile

from playmix.crosscutting.logging import (
    CorrelationContext, StructuredFormatter, get_logger, log_error, log_mix_complete,
    log_mix_start, log_with_fields, mix_id_var, setup_logging, stage_var
)


class _ListHandler(logging.Handler):

    def __init__(self):
        super().__init__()
        self.setFormatter(StructuredFormatter())
        self.lines = []

    def emit(self, record):
        self.lines.append(json.loads(self.format(record)))


class TestStructuredLogging:
    """Tests for JSON log output and correlation fields."""

    def setup_method(self):
        self.logger = logging.getLogger('playmix.test')
        self.logger.setLevel(logging.DEBUG)
        self.handler = _ListHandler()
        self.logger.addHandler(self.handler)

    def teardown_method(self):
        self.logger.removeHandler(self.handler)

    def test_basic_record(self):
        self.logger.info('hello')
        entry = self.handler.lines[0]
        assert entry['message'] == 'hello'
        assert entry['level'] == 'INFO'
        assert entry['logger'] == 'playmix.test'
        assert 'mixId' not in entry

    def test_correlation_context(self):
        with CorrelationContext(mix_id='mix-1', source_id='src-a', stage='sequence'):
            self.logger.info('inside')
        self.logger.info('outside')

        inside, outside = self.handler.lines
        assert inside['mixId'] == 'mix-1'
        assert inside['sourceId'] == 'src-a'
        assert inside['stage'] == 'sequence'
        assert 'mixId' not in outside

    def test_nested_context_restores_outer(self):
        with CorrelationContext(mix_id='outer', stage='plan'):
            with CorrelationContext(stage='exhausted'):
                assert stage_var.get() == 'exhausted'
                assert mix_id_var.get() == 'outer'
            assert stage_var.get() == 'plan'
        assert mix_id_var.get() is None

    def test_fields(self):
        log_with_fields(self.logger, 'WARNING', 'with fields', {'a': 1}, b=2)
        assert self.handler.lines[0]['fields'] == {'a': 1, 'b': 2}

    def test_mix_helpers(self):
        log_mix_start(self.logger, 'mix-9', 3, 'crescendo', seed=4)
        log_mix_complete(self.logger, 'mix-9', 20, 4_000_000, 'stopped_complete')
        start, complete = self.handler.lines
        assert start['mixId'] == 'mix-9'
        assert start['stage'] == 'start'
        assert start['fields'] == {'source_count': 3, 'strategy': 'crescendo', 'seed': 4}
        assert complete['fields']['state'] == 'stopped_complete'

    def test_log_error(self):
        log_error(self.logger, 'failed', ValueError('bad'))
        entry = self.handler.lines[0]
        assert entry['level'] == 'ERROR'
        assert entry['fields'] == {'error_type': 'ValueError', 'error_message': 'bad'}


class TestSetupLogging:

    def teardown_method(self):
        logging.getLogger('playmix').handlers.clear()

    def test_setup_with_file(self):
        temp_dir = tempfile.mkdtemp()
        log_file = os.path.join(temp_dir, 'playmix.log')
        logger = setup_logging('DEBUG', log_file=log_file)
        assert logger is get_logger()
        assert logger.level == logging.DEBUG
        assert len(logger.handlers) == 2

        get_logger('playmix.file').info('to file')
        for handler in logger.handlers:
            handler.flush()
        with open(log_file) as f:
            assert json.loads(f.readline())['message'] == 'to file'
        for handler in logger.handlers:
            handler.close()

    def test_plain_formatter(self):
        logger = setup_logging('INFO', structured=False)
        assert not isinstance(logger.handlers[0].formatter, StructuredFormatter)
