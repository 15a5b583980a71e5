import json
from types import SimpleNamespace

import pytest

import sync_cli
from sync_services.geocode_backfill_service import GeocodeBackfillService
from sync_services.geocoding_service import GeocodeResult
from sync_services.reconciliation_service import ReconciliationService

MARKET = 'montgomery-al'


@pytest.fixture
def context(store, geocoder, config, monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    ctx = SimpleNamespace(
        config=config,
        store=store,
        geocoder=geocoder,
        reconciliation=ReconciliationService(store, config),
        backfill=GeocodeBackfillService(store, geocoder, config),
    )
    monkeypatch.setattr(sync_cli, 'get_context', lambda: ctx)
    return ctx


def write_results(tmp_path, urls):
    path = tmp_path / 'daily.json'
    path.write_text(json.dumps([
        {'url': url, 'title': url, 'address': '1 Test St', 'rent': '$900'} for url in urls
    ]), encoding='utf-8')
    return str(path)


def test_sync_command(context, store, tmp_path):
    store.add('A', market=MARKET)
    store.add('B', market=MARKET)
    results = write_results(tmp_path, ['A', 'C'])

    assert sync_cli.main(['sync', results, MARKET]) == 0

    assert store.active_urls(MARKET) == {'A', 'C'}
    [log_file] = (tmp_path / 'logs').glob('scraper-sync-*.jsonl')
    entry = json.loads(log_file.read_text(encoding='utf-8').splitlines()[0])
    assert entry['results']['summary']['deactivatedProperties'] == 1
    assert entry['analysis']['currentUrls'] == 2


def test_import_command(context, store, tmp_path):
    results = write_results(tmp_path, ['A', 'B'])

    assert sync_cli.main(['import', results, MARKET]) == 0
    assert store.active_urls(MARKET) == {'A', 'B'}


def test_sync_fails_when_store_unreadable(context, store, tmp_path):
    store.fail_reads = True
    results = write_results(tmp_path, ['A'])

    assert sync_cli.main(['sync', results, MARKET]) == 1


def test_invalid_market_is_rejected(context, store, tmp_path):
    results = write_results(tmp_path, ['A'])

    assert sync_cli.main(['sync', results, 'Montgomery']) == 1
    assert store.writes == 0


def test_missing_file_is_rejected(context, tmp_path):
    assert sync_cli.main(['import', str(tmp_path / 'missing.json'), MARKET]) == 1


def test_diff_command_writes_nothing(context, store, tmp_path, capsys):
    store.add('A', market=MARKET)
    results = write_results(tmp_path, ['B'])

    assert sync_cli.main(['diff', results, MARKET, '--verbose']) == 0

    out = capsys.readouterr().out
    assert '+ B' in out
    assert '- A' in out
    assert store.writes == 0


def test_geocode_command(context, store, geocoder):
    store.add('A', market=MARKET)
    geocoder.default = GeocodeResult(lat=32.37, lng=-86.3)

    assert sync_cli.main(['geocode', '--market', MARKET]) == 0
    assert store.find_missing_coordinates(MARKET) == []


def test_status_command(context, store, capsys):
    store.add('A', market=MARKET)
    store.add('B', market=MARKET, is_active=False)

    assert sync_cli.main(['status', MARKET]) == 0
    assert 'Inactive: 1' in capsys.readouterr().out
