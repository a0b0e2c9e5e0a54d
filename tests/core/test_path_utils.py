from pathlib import Path

from rawmgr_backend import path_utils


def test_safe_rel_path_rejects_unsafe_inputs() -> None:
    assert path_utils.safe_rel_path(None) == Path("")
    assert path_utils.safe_rel_path("") == Path("")
    assert path_utils.safe_rel_path("/") == Path("")
    assert path_utils.safe_rel_path("../x") is None
    assert path_utils.safe_rel_path("a/../../x") is None
    assert path_utils.safe_rel_path("a\x00b") is None
    assert path_utils.safe_rel_path("ok/sub") == Path("ok/sub")
    assert path_utils.safe_rel_path("\\ok\\sub\\") == Path("ok/sub")


def test_to_rel_key() -> None:
    assert path_utils.to_rel_key(Path("a") / "b" / "c.arw") == "a/b/c.arw"
    assert path_utils.to_rel_key(Path("")) == ""
    assert path_utils.to_rel_key("./x.nef") == "x.nef"


def test_is_same_or_child_is_lexical(tmp_path: Path) -> None:
    assert path_utils.is_same_or_child(tmp_path / "a" / "b", tmp_path / "a")
    assert path_utils.is_same_or_child(tmp_path / "a", tmp_path / "a")
    assert not path_utils.is_same_or_child(tmp_path / "ab", tmp_path / "a")


def test_safe_rel_path_keeps_whitespace_in_names() -> None:
    assert path_utils.safe_rel_path("trip /x.arw") == Path("trip /x.arw")
    assert path_utils.safe_rel_path("/IMG.arw ") == Path("IMG.arw ")
