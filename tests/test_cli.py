import sys

import pytest
from ortepcif import cli


def _run(monkeypatch, *args):
    monkeypatch.setattr(sys, 'argv', ['ortep-cif-info', *args])
    cli.main()


def test_summary(monkeypatch, capsys, data_dir):
    _run(monkeypatch, str(data_dir / 'sample.cif'))
    out = capsys.readouterr().out
    expected = [
        'data_sample',
        'a=5.5650(10)',
        'beta=101.340(10)',
        'space group: P 1 21/c 1 (14), 4 symmetry operations',
        'atoms: 5, bonds: 5, H-bonds: 2, connected groups: 1',
    ]
    for text in expected:
        if text not in out:
            pytest.fail(f'Summary should contain {text!r}, got\n{out}')


def test_summary_with_modifiers(monkeypatch, capsys, data_dir):
    _run(
        monkeypatch, str(data_dir / 'sample.cif'),
        '--hydrogens', 'none', '--grow', 'bonds-yes-hbonds-none'
    )
    out = capsys.readouterr().out
    if 'atoms: 6, bonds: 6, H-bonds: 0' not in out:
        pytest.fail(f'Modifiers should be applied before counting, got\n{out}')


def test_nothing_read(monkeypatch, data_dir):
    with pytest.warns(UserWarning, match='skipping'):
        with pytest.raises(SystemExit):
            _run(monkeypatch, str(data_dir / 'broken.cif'), '--no_fix')
