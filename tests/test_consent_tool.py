"""
Tests for the consent_tool command line interface.
"""

import json
import pytest
import sys
from pathlib import Path

import yaml

# Add tools to path
sys.path.insert(0, str(Path(__file__).parent.parent / 'tools'))

from consent_tool import get_info, main, read_consent_string, resolve_encoding
from consent_envelope import decode
from scalar_codecs import VendorEncoding


REFERENCE = "BOEFBi5OEFBi5AHABDENAI4AAAB9vABAASA"
REFERENCE_MODIFIED = "BOEFBi5ONlzmAAHABDENAI4AAAB9vABgASABQA"
SPARSE_BITFIELD = "BOEFEAyOEFEAyAHABDENAI4AAAAAoXA"
SPARSE_RANGE = "BOEFEAyOEFEAyAHABDENAI4AAAAAqACAAHAAUABw"
VERSION_63 = "_OEFEAyOEFEAyAHABDENAI4AAAAAoXA"


class TestDecodeCommand:
    """Tests for `consent_tool decode`."""

    def test_decode_to_yaml(self, capsys):
        """Decoded record is printed as YAML."""
        assert main(['decode', REFERENCE]) == 0
        doc = yaml.safe_load(capsys.readouterr().out)
        assert doc['cmp_id'] == 7
        assert doc['consent_language'] == 'EN'
        assert doc['purposes_allowed'] == [1, 2, 3]
        assert doc['vendor_consent']['max_vendor_id'] == 2011
        assert doc['vendor_consent']['default_consent'] is True
        assert doc['vendor_consent']['exceptions'] == [9]

    def test_decode_to_json(self, capsys):
        """-j prints JSON with string timestamps."""
        assert main(['decode', REFERENCE, '-j']) == 0
        doc = json.loads(capsys.readouterr().out)
        assert doc['created'] == '2017-11-07T18:59:04.900Z'
        assert doc['vendor_consent']['encoding'] == 'range'

    def test_decode_from_file(self, tmp_path, capsys):
        """Input may be a file holding the string."""
        path = tmp_path / 'consent.txt'
        path.write_text(REFERENCE + '\n')
        assert main(['decode', str(path), '-j']) == 0
        assert json.loads(capsys.readouterr().out)['cmp_id'] == 7

    def test_decode_to_output_file(self, tmp_path, capsys):
        """-o writes the document and reports on stderr."""
        out = tmp_path / 'record.yaml'
        assert main(['decode', REFERENCE, '-o', str(out)]) == 0
        assert 'Written to' in capsys.readouterr().err
        assert yaml.safe_load(out.read_text())['vendor_list_version'] == 8


class TestEncodeCommand:
    """Tests for `consent_tool encode`."""

    def test_yaml_roundtrip(self, tmp_path, capsys):
        """decode -o then encode reproduces the string."""
        path = tmp_path / 'record.yaml'
        assert main(['decode', REFERENCE, '-o', str(path)]) == 0
        capsys.readouterr()

        assert main(['encode', str(path), '-q']) == 0
        captured = capsys.readouterr()
        assert captured.out.strip() == REFERENCE
        assert captured.err == ''

    def test_json_roundtrip(self, tmp_path, capsys):
        """JSON documents are accepted by suffix."""
        path = tmp_path / 'record.json'
        assert main(['decode', SPARSE_BITFIELD, '-j', '-o', str(path)]) == 0
        capsys.readouterr()

        assert main(['encode', str(path)]) == 0
        captured = capsys.readouterr()
        assert captured.out.strip() == SPARSE_BITFIELD
        assert '# Encoding: bitfield' in captured.err

    @pytest.mark.parametrize("choice,expected", [
        ('range', SPARSE_RANGE),
        ('bitfield', SPARSE_BITFIELD),
        ('auto', SPARSE_BITFIELD),
    ])
    def test_encoding_override(self, tmp_path, capsys, choice, expected):
        """--encoding forces the vendor payload mode."""
        path = tmp_path / 'record.yaml'
        assert main(['decode', SPARSE_RANGE, '-o', str(path)]) == 0
        capsys.readouterr()

        assert main(['encode', str(path), '-e', choice, '-q']) == 0
        assert capsys.readouterr().out.strip() == expected

    def test_missing_file(self, tmp_path, capsys):
        """Missing record file exits with status 1."""
        assert main(['encode', str(tmp_path / 'nope.yaml')]) == 1
        assert 'not found' in capsys.readouterr().err

    def test_invalid_json(self, tmp_path, capsys):
        """Unparseable JSON exits with status 1."""
        path = tmp_path / 'record.json'
        path.write_text('{not json')
        assert main(['encode', str(path)]) == 1
        assert capsys.readouterr().err.startswith('Error: Cannot parse')

    def test_invalid_yaml(self, tmp_path, capsys):
        """Unparseable YAML exits with status 1."""
        path = tmp_path / 'record.yaml'
        path.write_text('cmp_id: [1, 2\n')
        assert main(['encode', str(path)]) == 1
        assert capsys.readouterr().err.startswith('Error: Cannot parse')

    def test_non_integer_field(self, tmp_path, capsys):
        """A field that is not a number exits with status 1."""
        path = tmp_path / 'record.yaml'
        assert main(['decode', REFERENCE, '-o', str(path)]) == 0
        doc = yaml.safe_load(path.read_text())
        doc['cmp_id'] = 'abc'
        path.write_text(yaml.safe_dump(doc))
        capsys.readouterr()

        assert main(['encode', str(path)]) == 1
        assert 'Invalid consent record' in capsys.readouterr().err

    def test_not_a_mapping(self, tmp_path, capsys):
        """A YAML list is not a record."""
        path = tmp_path / 'record.yaml'
        path.write_text('- 1\n- 2\n')
        assert main(['encode', str(path)]) == 1
        assert capsys.readouterr().err.startswith('Error:')


class TestModifyCommand:
    """Tests for `consent_tool modify`."""

    def test_remove_and_touch(self, capsys):
        """Withdraw vendor 10 and update last_updated."""
        argv = ['modify', REFERENCE, '--remove', '10',
                '--last-updated', '2018-05-11T12:00:00Z', '-q']
        assert main(argv) == 0
        captured = capsys.readouterr()
        assert captured.out.strip() == REFERENCE_MODIFIED
        assert captured.err == ''

    def test_add_restores(self, capsys):
        """Adding vendors back gives an all-consent range list."""
        assert main(['modify', REFERENCE_MODIFIED, '--add', '9', '--add', '10', '-q']) == 0
        record = decode(capsys.readouterr().out.strip())
        assert record.vendor_consent.to_ranges() == (True, [])

    def test_auto_encoding(self, capsys):
        """-e auto picks the shorter payload."""
        assert main(['modify', SPARSE_RANGE, '-e', 'auto', '-q']) == 0
        assert capsys.readouterr().out.strip() == SPARSE_BITFIELD

    def test_reports_changes(self, capsys):
        """Without -q the changes are summarized on stderr."""
        assert main(['modify', SPARSE_BITFIELD, '--add', '1']) == 0
        assert '# Added: [1]' in capsys.readouterr().err

    def test_out_of_range_vendor(self, capsys):
        """Vendor ids beyond max_vendor_id are rejected."""
        assert main(['modify', SPARSE_BITFIELD, '--add', '11']) == 1
        assert 'Vendor id 11' in capsys.readouterr().err

    def test_bad_timestamp(self, capsys):
        """Unparseable --last-updated exits with status 1."""
        assert main(['modify', REFERENCE, '--last-updated', 'yesterday']) == 1
        assert 'Invalid timestamp' in capsys.readouterr().err


class TestInfoCommand:
    """Tests for `consent_tool info`."""

    def test_info_output(self, capsys):
        """Sizes and header layout are printed."""
        assert main(['info', REFERENCE]) == 0
        out = capsys.readouterr().out
        assert 'Encoding: range (smallest: range)' in out
        assert 'Max vendor id: 2011' in out
        assert 'Consented vendors: 2010' in out
        assert 'purposes_allowed' in out

    def test_get_info(self):
        """Payload sizes of the sparse vector."""
        stats = get_info(SPARSE_RANGE)
        assert stats['encoding'] == 'range'
        assert stats['bitfield_payload_bits'] == 10
        assert stats['range_payload_bits'] == 13 + 17 + 33
        assert stats['smallest_encoding'] == 'bitfield'
        assert stats['consented_vendors'] == 4
        assert stats['header_bits'] == 173


class TestErrors:
    """Codec errors become exit status 1 with a message on stderr."""

    def test_unsupported_version(self, capsys):
        assert main(['decode', VERSION_63]) == 1
        assert 'Unsupported consent string version: 63' in capsys.readouterr().err

    def test_invalid_base64(self, capsys):
        assert main(['info', 'not*base64']) == 1
        assert capsys.readouterr().err.startswith('Error:')

    def test_missing_command(self):
        """argparse exits for a missing subcommand."""
        with pytest.raises(SystemExit):
            main([])


class TestHelpers:
    """Tests for CLI helper functions."""

    def test_read_inline_string(self):
        assert read_consent_string(f"  {REFERENCE}\n") == REFERENCE

    def test_read_very_long_string(self):
        """Strings longer than a file name are still treated as input."""
        text = 'A' * 5000
        assert read_consent_string(text) == text

    @pytest.mark.parametrize("name,expected", [
        (None, None),
        ('keep', None),
        ('range', VendorEncoding.RANGE),
        ('bitfield', VendorEncoding.BITFIELD),
        ('auto', VendorEncoding.BITFIELD),
    ])
    def test_resolve_encoding(self, name, expected):
        record = decode(SPARSE_RANGE)
        assert resolve_encoding(name, record) == expected
