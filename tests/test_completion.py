from pipeshell import completion
from pipeshell.completion import Completer, CompletionTrie, scan_path_executables


def test_scan_path_executables(bin_dir, tmp_path):
    missing = tmp_path / "nope"
    found = scan_path_executables(f"{missing}:{bin_dir}:")
    assert found == {"git", "grep", "grpc-tool"}


def test_trie_membership_and_matches():
    trie = CompletionTrie(["git", "grep", "grpc-tool"])
    assert "git" in trie
    assert "gi" not in trie
    assert len(trie) == 3
    assert trie.matches("g") == ["git", "grep", "grpc-tool"]
    assert trie.matches("gr") == ["grep", "grpc-tool"]
    assert trie.matches("x") == []


def test_longest_unique_extension():
    trie = CompletionTrie(["git", "grep", "grpc-tool"])
    assert trie.longest_unique_extension("gi") == ("t", ["git"])
    assert trie.longest_unique_extension("grp") == ("c-tool", ["grpc-tool"])
    assert trie.longest_unique_extension("gr") == ("", ["grep", "grpc-tool"])
    assert trie.longest_unique_extension("zz") == ("", [])


def test_extension_stops_at_terminator():
    trie = CompletionTrie(["foo", "foobar"])
    assert trie.longest_unique_extension("f") == ("oo", ["foo", "foobar"])
    assert trie.longest_unique_extension("foo") == ("", ["foo", "foobar"])


def test_duplicate_insert_counts_once():
    trie = CompletionTrie(["ls", "ls"])
    assert len(trie) == 1


def test_completer_policy(bin_dir):
    completer = Completer(["echo", "exit"], path_func=lambda: str(bin_dir))
    completer.refresh()

    result = completer.complete("gi")
    assert result.kind == completion.UNIQUE
    assert result.insert == "t "

    result = completer.complete("gr")
    assert result.kind == completion.AMBIGUOUS
    assert result.matches == ["grep", "grpc-tool"]

    result = completer.complete("e")
    assert result.kind == completion.AMBIGUOUS
    assert result.matches == ["echo", "exit"]

    assert completer.complete("zz").kind == completion.NONE
    assert completer.complete("git st").kind == completion.NONE
    assert completer.complete("").kind == completion.NONE


def test_completer_partial_extension():
    completer = Completer(["history", "histogram"])
    result = completer.complete("hi")
    assert result.kind == completion.PARTIAL
    assert result.insert == "sto"


def test_refresh_sees_new_executables(bin_dir):
    completer = Completer(path_func=lambda: str(bin_dir))
    completer.refresh()
    assert completer.complete("mak").kind == completion.NONE

    p = bin_dir / "make"
    p.write_text("#!/bin/sh\n")
    p.chmod(0o755)
    completer.refresh()
    assert completer.complete("mak").insert == "e "
