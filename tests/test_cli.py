"""Tests for the nuget-convert command line."""

import json

from nuget_converter.cli.__main__ import main


class TestCli:
  def test_check_json(self, disk_solution, capsys, no_nuget):
    path = disk_solution({'Core': [('A', '1.0')], 'Web': []})

    assert main(['check', '--solution', str(path), '--json']) == 0

    result = json.loads(capsys.readouterr().out)
    assert result['needs_conversion'] is True
    assert result['projects'] == ['Core', 'Web']

  def test_check_text(self, disk_solution, capsys, no_nuget):
    path = disk_solution({'Core': [('A', '1.0')]})

    assert main(['check', '--solution', str(path)]) == 0

    assert 'Projects to convert: Core' in capsys.readouterr().out

  def test_missing_solution(self, tmp_path, capsys):
    assert main(['check', '--solution', str(tmp_path / 'Missing.sln')]) == 2
    assert main(['convert', '--solution', str(tmp_path / 'Missing.sln')]) == 2

  def test_convert_json(self, disk_solution, capsys, no_nuget):
    path = disk_solution({'Core': [('A', '1.0')]})

    code = main(['convert', '--solution', str(path), '--settle-seconds', '0', '--json'])

    summary = json.loads(capsys.readouterr().out)
    assert code == 0
    assert summary['status'] == 'completed'
    assert summary['result']['reinstalled_projects'] == ['Core']
    assert not (path.parent / 'Core' / 'packages.config').exists()

  def test_convert_prints_phases(self, disk_solution, capsys, no_nuget):
    path = disk_solution({'Core': [('A', '1.0')]})

    assert main(['convert', '--solution', str(path), '--settle-seconds', '0']) == 0

    out = capsys.readouterr().out
    assert '== 1/6: Get Projects' in out
    assert '== 6/6: Add packages as packagereferences to projectfiles' in out
    assert ': completed' in out

  def test_report_roundtrip(self, disk_solution, capsys, no_nuget):
    path = disk_solution({'Core': [('A', '1.0')]})
    main(['convert', '--solution', str(path), '--settle-seconds', '0', '--json'])
    session_id = json.loads(capsys.readouterr().out)['session_id']

    assert main(['report', '--session-id', session_id]) == 0
    assert json.loads(capsys.readouterr().out)['status'] == 'completed'

    assert main(['events', '--session-id', session_id, '--limit', '5']) == 0
    lines = capsys.readouterr().out.splitlines()
    assert lines and len(lines) <= 5

  def test_report_not_found(self, capsys):
    assert main(['report', '--session-id', 'does-not-exist']) == 2
