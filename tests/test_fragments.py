import os

import pytest

from peer.fragments import FragmentSet, fragment_count


def test_reference_file_splits_into_two_fragments():
    data = os.urandom(1_000_000)
    fragments = FragmentSet.from_bytes(data, 512 * 1024)

    assert fragments.count == 2
    assert [len(f) for f in fragments] == [524288, 475712]
    assert fragments.assemble() == data


@pytest.mark.parametrize(
    "size, max_size",
    [(0, 4), (1, 4), (3, 4), (4, 4), (5, 4), (8, 4), (1023, 1024), (4097, 1)],
)
def test_split_then_join_is_identity(size, max_size):
    data = bytes(i % 251 for i in range(size))
    fragments = FragmentSet.from_bytes(data, max_size)

    assert fragments.count == fragment_count(size, max_size)
    assert fragments.count == -(-size // max_size)
    assert b"".join(fragments) == data
    assert all(len(f) == max_size for f in list(fragments)[:-1])


def test_empty_file_has_no_fragments(tmp_path):
    path = tmp_path / "empty.bin"
    path.write_bytes(b"")

    fragments = FragmentSet.from_file(path, 16)

    assert fragments.count == 0
    assert fragments.total_size == 0
    with pytest.raises(IndexError):
        fragments.get(0)


def test_get_rejects_negative_and_out_of_range_indices():
    fragments = FragmentSet.from_bytes(b"abcdefgh", 3)

    assert fragments.get(0) == b"abc"
    assert fragments.get(2) == b"gh"
    with pytest.raises(IndexError):
        fragments.get(-1)
    with pytest.raises(IndexError):
        fragments.get(3)


def test_non_positive_fragment_size_is_rejected():
    with pytest.raises(ValueError):
        FragmentSet.from_bytes(b"abc", 0)
    with pytest.raises(ValueError):
        fragment_count(10, -1)


def test_missing_file_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        FragmentSet.from_file(tmp_path / "nope.bin")
