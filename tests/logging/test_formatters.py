import json
import logging

import pytest

from esupdater.engines.loggers import LogFormat, ObjectJsonFormatter, ObjectLogger, \
                                      ObjectPrefixingJsonFormatter, \
                                      ObjectPrefixingTextFormatter, ObjectTextFormatter, \
                                      make_formatter


@pytest.fixture()
def body():
    return {
        'kind': 'ExternalSecret',
        'apiVersion': 'external-secrets.io/v1beta1',
        'metadata': {'uid': 'uid1', 'name': 'name1', 'namespace': 'namespace1'},
    }


@pytest.fixture()
def record(caplog, body):
    logger = ObjectLogger(body=body)
    with caplog.at_level(logging.DEBUG):
        logger.info("hello")
    return caplog.records[-1]


@pytest.fixture()
def unnamespaced_record(caplog, body):
    del body['metadata']['namespace']
    logger = ObjectLogger(body=body)
    with caplog.at_level(logging.DEBUG):
        logger.info("hello")
    return caplog.records[-1]


def test_object_logger_carries_the_reference(record):
    assert record.name == 'esupdater.objects'
    assert record.k8s_ref == {
        'apiVersion': 'external-secrets.io/v1beta1',
        'kind': 'ExternalSecret',
        'name': 'name1',
        'uid': 'uid1',
        'namespace': 'namespace1',
    }


def test_object_logger_merges_the_extras(caplog, body):
    logger = ObjectLogger(body=body)
    with caplog.at_level(logging.DEBUG):
        logger.info("hello", extra={'custom': 'value'})
    assert caplog.records[-1].custom == 'value'
    assert caplog.records[-1].k8s_ref['name'] == 'name1'


def test_reference_is_not_affected_by_later_body_changes(caplog, body):
    logger = ObjectLogger(body=body)
    body['metadata']['name'] = 'changed'
    with caplog.at_level(logging.DEBUG):
        logger.info("hello")
    assert caplog.records[-1].k8s_ref['name'] == 'name1'


def test_prefixing_text_formatter_when_namespaced(record):
    formatted = ObjectPrefixingTextFormatter().format(record)
    assert formatted == '[namespace1/name1] hello'


def test_prefixing_text_formatter_when_not_namespaced(unnamespaced_record):
    formatted = ObjectPrefixingTextFormatter().format(unnamespaced_record)
    assert formatted == '[name1] hello'


def test_prefixing_json_formatter(record):
    decoded = json.loads(ObjectPrefixingJsonFormatter().format(record))
    assert decoded['message'] == '[namespace1/name1] hello'


def test_regular_text_formatter_omits_prefixes(record):
    assert ObjectTextFormatter().format(record) == 'hello'


def test_regular_json_formatter_omits_prefixes(record):
    decoded = json.loads(ObjectJsonFormatter().format(record))
    assert decoded['message'] == 'hello'


def test_json_formatter_adds_the_reference_and_severity(record):
    decoded = json.loads(ObjectJsonFormatter().format(record))
    assert decoded['object']['name'] == 'name1'
    assert decoded['object']['namespace'] == 'namespace1'
    assert decoded['severity'] == 'info'
    assert 'timestamp' in decoded
    assert 'k8s_ref' not in decoded


def test_json_formatter_with_a_custom_refkey(record):
    decoded = json.loads(ObjectJsonFormatter(refkey='k8s').format(record))
    assert decoded['k8s']['name'] == 'name1'
    assert 'object' not in decoded


@pytest.mark.parametrize('level, severity', [
    (logging.DEBUG, 'debug'),
    (logging.INFO, 'info'),
    (logging.WARNING, 'warn'),
    (logging.ERROR, 'error'),
    (logging.CRITICAL, 'fatal'),
])
def test_json_severities(level, severity):
    record = logging.LogRecord('name', level, __file__, 1, 'hello', (), None)
    decoded = json.loads(ObjectJsonFormatter().format(record))
    assert decoded['severity'] == severity
    assert 'object' not in decoded


@pytest.mark.parametrize('log_format, log_prefix, cls', [
    (LogFormat.PLAIN, None, ObjectPrefixingTextFormatter),
    (LogFormat.FULL, None, ObjectPrefixingTextFormatter),
    (LogFormat.JSON, None, ObjectJsonFormatter),
    (LogFormat.PLAIN, False, ObjectTextFormatter),
    (LogFormat.JSON, True, ObjectPrefixingJsonFormatter),
    ('%(message)s', True, ObjectPrefixingTextFormatter),
    ('%(message)s', False, ObjectTextFormatter),
])
def test_formatter_selection(log_format, log_prefix, cls):
    formatter = make_formatter(log_format=log_format, log_prefix=log_prefix)
    assert type(formatter) is cls


def test_unsupported_format():
    with pytest.raises(ValueError):
        make_formatter(log_format=123)
