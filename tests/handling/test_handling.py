import pytest

from esupdater.engines import activities
from esupdater.reactor.handling import Summary, process_events
from esupdater.reactor.namespaces import NamespaceDiscoveryError
from esupdater.reactor.updating import UpdateError
from esupdater.structs.credentials import ConnectionInfo, LoginError
from esupdater.structs.events import Event

ES_PREFIX = '/apis/external-secrets.io/v1beta1/namespaces'


def data_spec(*keys):
    return {'data': [{'remoteRef': {'key': key}} for key in keys]}


async def test_no_events_make_no_cluster_calls(fake_api, fake_vault, settings):
    fake_api.add('ns1', 'es1', spec=data_spec('db/pass'))
    summary = await process_events([], settings=settings)
    assert summary == Summary()
    assert fake_api.requests == []


async def test_matching_resources_are_updated(fake_api, fake_vault, settings):
    fake_api.add('ns1', 'es1', spec=data_spec('/db/pass'))
    fake_api.add('ns1', 'es2', spec=data_spec('other'))
    fake_api.add('ns2', 'es3', spec={'dataFrom': [{'extract': {'key': 'db/pass'}}]})

    summary = await process_events([Event(item_name='db/pass')], settings=settings)

    assert summary == Summary(namespaces=2, scanned=3, updated=2)
    assert fake_api.puts == [
        ('PUT', f'{ES_PREFIX}/ns1/externalsecrets/es1'),
        ('PUT', f'{ES_PREFIX}/ns2/externalsecrets/es3'),
    ]


async def test_only_the_first_event_is_processed(fake_api, fake_vault, settings):
    fake_api.add('ns1', 'es1', spec=data_spec('first'))
    fake_api.add('ns1', 'es2', spec=data_spec('second'))
    fake_api.add('ns1', 'es3', spec=data_spec('third'))

    events = [Event(item_name='first'), Event(item_name='second'), Event(item_name='third')]
    summary = await process_events(events, settings=settings)

    assert summary.updated == 1
    assert fake_api.puts == [('PUT', f'{ES_PREFIX}/ns1/externalsecrets/es1')]
    assert fake_api.requests == [
        ('GET', '/api/v1/namespaces'),
        ('GET', f'{ES_PREFIX}/ns1/externalsecrets'),
        ('PUT', f'{ES_PREFIX}/ns1/externalsecrets/es1'),
    ]


async def test_only_own_namespace_when_listing_is_forbidden(fake_api, fake_vault, settings):
    fake_api.forbidden_namespaces = True
    fake_api.add('ns1', 'es1', spec=data_spec('db/pass'))
    fake_api.add('own-ns', 'es2', spec=data_spec('db/pass'))

    summary = await process_events([Event(item_name='db/pass')], settings=settings)

    assert summary == Summary(namespaces=1, scanned=1, updated=1)
    listings = [path for method, path in fake_api.requests
                if method == 'GET' and path.endswith('/externalsecrets')]
    assert listings == [f'{ES_PREFIX}/own-ns/externalsecrets']
    assert fake_api.puts == [('PUT', f'{ES_PREFIX}/own-ns/externalsecrets/es2')]


async def test_unreadable_own_namespace_fails_the_processing(fake_api, fake_vault, settings,
                                                             tmp_path):
    fake_api.forbidden_namespaces = True
    settings.discovery.namespace_path = str(tmp_path / 'nonexistent')
    with pytest.raises(NamespaceDiscoveryError):
        await process_events([Event(item_name='db/pass')], settings=settings)
    assert fake_api.puts == []


async def test_listing_errors_skip_the_namespace(fake_api, fake_vault, settings, assert_logs):
    fake_api.add('ns1', 'es1', spec=data_spec('db/pass'))
    fake_api.add('ns2', 'es2', spec=data_spec('db/pass'))
    fake_api.add('ns3', 'es3', spec=data_spec('db/pass'))
    fake_api.forbidden_listings.add('ns2')

    summary = await process_events([Event(item_name='db/pass')], settings=settings)

    assert summary == Summary(namespaces=3, scanned=2, updated=2)
    assert fake_api.puts == [
        ('PUT', f'{ES_PREFIX}/ns1/externalsecrets/es1'),
        ('PUT', f'{ES_PREFIX}/ns3/externalsecrets/es3'),
    ]
    assert_logs([r"Failed to list ExternalSecrets in namespace ns2: \(403\)"])


@pytest.mark.parametrize('spec', [None, 'a string', ['a', 'list']])
async def test_resources_without_spec_are_skipped(fake_api, fake_vault, settings, assert_logs,
                                                  spec):
    body = fake_api.add('ns1', 'es1')
    if spec is not None:
        body['spec'] = spec
    fake_api.add('ns1', 'es2', spec=data_spec('db/pass'))

    summary = await process_events([Event(item_name='db/pass')], settings=settings)

    assert summary == Summary(namespaces=1, scanned=2, updated=1)
    assert fake_api.puts == [('PUT', f'{ES_PREFIX}/ns1/externalsecrets/es2')]
    assert_logs([r"Error retrieving spec for ExternalSecret ns1/es1"])


async def test_update_errors_abort_the_processing(fake_api, fake_vault, settings, assert_logs):
    fake_api.add('ns1', 'es1', spec=data_spec('db/pass'))
    fake_api.add('ns1', 'es2', spec=data_spec('db/pass'))
    fake_api.add('ns2', 'es3', spec=data_spec('db/pass'))
    fake_api.failing_updates[('ns1', 'es1')] = 409

    with pytest.raises(UpdateError) as err:
        await process_events([Event(item_name='db/pass')], settings=settings)

    assert err.value.namespace == 'ns1'
    assert err.value.name == 'es1'
    assert fake_api.puts == [('PUT', f'{ES_PREFIX}/ns1/externalsecrets/es1')]
    assert_logs([r"Failed to update ExternalSecret ns1/es1"])


async def test_cache_buster_from_settings(fake_api, fake_vault, settings):
    settings.cachebuster.enabled = True
    settings.cachebuster.interval = '0s'
    fake_api.add('ns1', 'es1', spec=data_spec('db/pass'))

    await process_events([Event(item_name='db/pass')], settings=settings)

    url = f'{ES_PREFIX}/ns1/externalsecrets/es1'
    assert fake_api.requests[-3:] == [('PUT', url), ('GET', url), ('PUT', url)]
    assert len(fake_api.puts) == 2


async def test_unmatched_resources_are_not_updated(fake_api, fake_vault, settings, assert_logs):
    fake_api.add('ns1', 'es1', spec=data_spec('other'))

    summary = await process_events([Event(item_name='db/pass')], settings=settings)

    assert summary == Summary(namespaces=1, scanned=1, updated=0)
    assert fake_api.puts == []
    assert_logs([
        r"Received event for secret update: db/pass",
        r"Checking namespace: ns1",
        r"Processing ExternalSecret: es1 in namespace ns1",
        r"Desired key 'db/pass' not found in ExternalSecret ns1/es1",
    ])


async def test_next_request_logs_in_again_after_credentials_are_rotated(
        mocker, fake_api, fake_vault, settings, assert_logs):
    fake_api.add('ns1', 'es1', spec=data_spec('db/pass'))
    fake_api.valid_tokens = {'rotated-token'}

    with pytest.raises(LoginError):
        await process_events([Event(item_name='db/pass')], settings=settings)
    assert not fake_vault
    assert fake_api.puts == []

    rotated = ConnectionInfo(server=fake_api.server, token='rotated-token')
    mocker.patch.object(activities, 'get_login_fns', return_value={
        'login_rotated': lambda **_: rotated,
    })
    summary = await process_events([Event(item_name='db/pass')], settings=settings)

    assert summary == Summary(namespaces=1, scanned=1, updated=1)
    assert fake_api.puts == [('PUT', f'{ES_PREFIX}/ns1/externalsecrets/es1')]
    assert_logs([r"All credentials have been invalidated. Re-authenticating."])


async def test_no_login_while_credentials_are_valid(mocker, fake_api, fake_vault, settings):
    fake_api.add('ns1', 'es1', spec=data_spec('db/pass'))
    get_login_fns = mocker.patch.object(activities, 'get_login_fns')
    await process_events([Event(item_name='db/pass')], settings=settings)
    assert not get_login_fns.called
