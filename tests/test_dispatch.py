import gzip
import io

import pytest
from alnlib.io import (AlignmentFile, AlignmentFormat, BlastMode, FormatSpec, ParserConfig, UnsupportedFormatError,
                       FormatMismatchError, MissingHeaderError)
from alnlib.io.blast import BlastTextIterator
from alnlib.io.maf import MafIterator

from test_blast import BLASTN, BLASTX
from test_maf import HEADER, block


class TestRegistry:
    def test_registered_formats(self):
        assert AlignmentFile.supports('maf', 'blastn')
        assert AlignmentFile.supports(AlignmentFormat.MAF, BlastMode.BLASTX)
        assert AlignmentFile.supports('maf', 'blastp')
        assert AlignmentFile.supports('blast-text', 'blastp')

    def test_unknown_names_are_not_supported(self):
        assert not AlignmentFile.supports('sam', 'blastn')
        assert not AlignmentFile.supports('maf', 'tblastn')
        assert not AlignmentFile.supports('sam', 'tblastn')

    def test_mode_lookup_is_case_insensitive(self):
        assert BlastMode('BlastX') is BlastMode.BLASTX
        assert BlastMode.BLASTX.translated
        assert not BlastMode.BLASTN.translated


class TestOpen:
    def test_sniffs_maf(self):
        with AlignmentFile.open(io.BytesIO(HEADER + block())) as p:
            assert isinstance(p, MafIterator)
            assert p.next() == 1

    def test_sniffs_blast(self):
        with AlignmentFile.open(io.BytesIO(BLASTX)) as p:
            assert isinstance(p, BlastTextIterator)
            assert p.mode is BlastMode.BLASTX

    def test_explicit_format_and_mode(self):
        p = AlignmentFile.open(io.BytesIO(HEADER + block()), fmt='maf', mode='BLASTX')
        assert isinstance(p, MafIterator)
        assert p.mode is BlastMode.BLASTX

    def test_compressed_path(self, tmp_path):
        path = tmp_path / 'hits.maf.gz'
        path.write_bytes(gzip.compress(HEADER + block() + block(b'read2')))
        with AlignmentFile.open(path, max_matches=5) as p:
            assert p.max_matches == 5
            assert [n for n, _ in p] == [1, 1]

    def test_config_object(self):
        config = ParserConfig(max_matches=1, max_errors=10)
        p = AlignmentFile.open(io.BytesIO(BLASTN), config=config)
        assert p.config is config
        assert p.next() == 1

    def test_config_and_kwargs_conflict(self):
        with pytest.raises(TypeError):
            AlignmentFile.open(io.BytesIO(BLASTN), config=ParserConfig(), max_matches=3)

    def test_unknown_option(self):
        with pytest.raises(TypeError, match="max_hits"):
            AlignmentFile.open(io.BytesIO(BLASTN), max_hits=3)

    def test_invalid_config(self):
        with pytest.raises(ValueError, match="max_matches"):
            ParserConfig(max_matches=0)


@pytest.fixture
def nucleotide_only_maf(monkeypatch):
    monkeypatch.setitem(AlignmentFile._REGISTRY, AlignmentFormat.MAF, FormatSpec(MafIterator, (BlastMode.BLASTN,)))


class TestUnsupported:
    def test_unknown_format(self):
        with pytest.raises(UnsupportedFormatError, match="sam"):
            AlignmentFile.open(io.BytesIO(BLASTN), fmt='sam')

    def test_unknown_mode(self):
        with pytest.raises(UnsupportedFormatError, match="tblastx"):
            AlignmentFile.open(io.BytesIO(BLASTN), mode='tblastx')

    def test_unsupported_combination(self, nucleotide_only_maf):
        with pytest.raises(UnsupportedFormatError, match="blastp"):
            AlignmentFile.open(io.BytesIO(HEADER + block()), fmt='maf', mode='blastp')

    def test_unsupported_combination_after_sniffing(self, nucleotide_only_maf):
        with pytest.raises(UnsupportedFormatError, match="blastp"):
            AlignmentFile.open(io.BytesIO(HEADER + block()), mode='blastp')

    def test_unrecognised_content(self):
        with pytest.raises(UnsupportedFormatError, match="Could not determine"):
            AlignmentFile.open(io.BytesIO(b'@read1\nACGT\n+\nIIII\n'))

    def test_declared_format_mismatch(self):
        with pytest.raises(FormatMismatchError):
            AlignmentFile.open(io.BytesIO(BLASTN), fmt='maf')

    def test_missing_header_through_facade(self):
        with pytest.raises(MissingHeaderError):
            AlignmentFile.open(io.BytesIO(HEADER.replace(b'lambda=0.3 K=0.1', b'') + block()))
