import pytest

from esupdater.structs.configuration import DEFAULT_CACHE_BUSTER_INTERVAL, \
                                            SERVICE_ACCOUNT_NAMESPACE_PATH, \
                                            ConfigurationError, Settings

CREDENTIALS = {'BASIC_AUTH_USER': 'user', 'BASIC_AUTH_PASSWORD': 'pass'}


def test_defaults_with_only_the_credentials():
    settings = Settings.from_environ(CREDENTIALS)
    assert settings.webhook.username == 'user'
    assert settings.webhook.password == 'pass'
    assert settings.webhook.host is None
    assert settings.webhook.port == 8000
    assert settings.webhook.path == '/webhook'
    assert settings.cachebuster.enabled is False
    assert settings.cachebuster.interval is None
    assert settings.networking.request_timeout is None
    assert settings.networking.connect_timeout is None
    assert settings.discovery.namespace_path == SERVICE_ACCOUNT_NAMESPACE_PATH


def test_default_interval_is_two_seconds():
    assert DEFAULT_CACHE_BUSTER_INTERVAL == 2.0


def test_all_values_from_the_environment():
    settings = Settings.from_environ(dict(
        CREDENTIALS,
        ENABLE_CACHE_BUSTER='true',
        CACHE_BUSTER_WAIT_INTERVAL='500ms',
        HTTP_PORT='9090',
        WEBHOOK_PATH='/hooks/secrets',
    ))
    assert settings.cachebuster.enabled is True
    assert settings.cachebuster.interval == '500ms'
    assert settings.webhook.port == 9090
    assert settings.webhook.path == '/hooks/secrets'


@pytest.mark.parametrize('value', ['', 'false', 'True', 'TRUE', '1', 'yes'])
def test_cache_buster_is_enabled_only_by_exact_true(value):
    settings = Settings.from_environ(dict(CREDENTIALS, ENABLE_CACHE_BUSTER=value))
    assert settings.cachebuster.enabled is False


def test_unparsable_interval_does_not_fail_the_startup():
    settings = Settings.from_environ(dict(CREDENTIALS, CACHE_BUSTER_WAIT_INTERVAL='soon'))
    assert settings.cachebuster.interval == 'soon'


@pytest.mark.parametrize('environ', [
    {},
    {'BASIC_AUTH_USER': 'user'},
    {'BASIC_AUTH_PASSWORD': 'pass'},
    {'BASIC_AUTH_USER': '', 'BASIC_AUTH_PASSWORD': 'pass'},
    {'BASIC_AUTH_USER': 'user', 'BASIC_AUTH_PASSWORD': ''},
])
def test_missing_credentials(environ):
    with pytest.raises(ConfigurationError, match=r"BASIC_AUTH_USER and BASIC_AUTH_PASSWORD"):
        Settings.from_environ(environ)


def test_invalid_port():
    with pytest.raises(ConfigurationError, match=r"HTTP_PORT"):
        Settings.from_environ(dict(CREDENTIALS, HTTP_PORT='http'))


def test_os_environ_is_used_by_default(monkeypatch):
    monkeypatch.setenv('BASIC_AUTH_USER', 'env-user')
    monkeypatch.setenv('BASIC_AUTH_PASSWORD', 'env-pass')
    monkeypatch.delenv('HTTP_PORT', raising=False)
    settings = Settings.from_environ()
    assert settings.webhook.username == 'env-user'
    assert settings.webhook.password == 'env-pass'


def test_password_is_not_exposed_in_repr():
    settings = Settings.from_environ(dict(CREDENTIALS, BASIC_AUTH_PASSWORD='t0p-s3cr3t'))
    assert 't0p-s3cr3t' not in repr(settings)
