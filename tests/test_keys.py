import pytest
from hypothesis import given, settings, strategies as st

from deploytables.errors import ManifestError
from deploytables.keys import derive_current_key, derive_revision_key

projects = st.text(alphabet=st.characters(exclude_characters=":"), min_size=1, max_size=20)
hashes = st.text(alphabet="0123456789abcdef", min_size=8, max_size=64)

@settings(max_examples=100, deadline=None)
@given(project=projects, override=st.one_of(st.none(), st.text(max_size=16)), revision_hash=hashes)
def test_derive_revision_key_is_deterministic(project: str, override, revision_hash: str):
    first = derive_revision_key(project, override, revision_hash)
    second = derive_revision_key(project, override, revision_hash)
    assert first == second
    assert first.startswith(f"{project}:")

@settings(max_examples=100, deadline=None)
@given(project=projects, override=st.text(min_size=1, max_size=16), revision_hash=hashes)
def test_override_wins_over_hash(project: str, override: str, revision_hash: str):
    assert derive_revision_key(project, override, revision_hash) == f"{project}:{override}"

def test_hash_is_truncated_to_eight_characters():
    assert derive_revision_key("demo", None, "ab12cd34ef56") == "demo:ab12cd34"
    assert derive_revision_key("demo", "", "ab12cd34ef56") == "demo:ab12cd34"

def test_short_hash_is_used_whole():
    assert derive_revision_key("demo", None, "abc") == "demo:abc"

def test_missing_token_and_hash_fails():
    with pytest.raises(ManifestError, match="demo"):
        derive_revision_key("demo", None, None)

def test_current_key():
    assert derive_current_key("demo") == "demo:current"
