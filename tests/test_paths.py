import pytest

from photoindex.errors import InvalidArgument
from photoindex.paths import (
    directory_of,
    guess_content_type,
    is_in_subdirectory,
    is_index_file,
    markdown_key,
    split_filepath,
    validate_key,
)


def test_directory_of():
    assert directory_of("photos/2024/img.jpg") == "photos/2024"
    assert directory_of("img.jpg") == ""
    assert directory_of("") == ""
    assert directory_of("a/b/") == "a/b"
    assert directory_of("a/img.jpg") == "a"


def test_index_files():
    assert is_index_file("a/index.md")
    assert is_index_file("a/NOTES.MD")
    assert not is_index_file("a/img.jpg")
    assert markdown_key("a/b") == "a/b/index.md"
    assert markdown_key("a/b/") == "a/b/index.md"


def test_subdirectory():
    assert not is_in_subdirectory("img.jpg", "")
    assert is_in_subdirectory("a/img.jpg", "")
    assert not is_in_subdirectory("a/img.jpg", "a/")
    assert is_in_subdirectory("a/b/img.jpg", "a/")


def test_content_type():
    assert split_filepath("a/b/IMG.JPG") == ("a/b", "IMG.JPG", "jpg")
    assert guess_content_type("a/b/IMG.JPG") == "image/jpeg"
    assert guess_content_type("movie.mov") == "video/quicktime"
    assert guess_content_type("README") == "application/octet-stream"


@pytest.mark.parametrize("key", ["", "/a.jpg", "a/", "a//b.jpg", "a/../b.jpg", "./a.jpg"])
def test_invalid_keys(key):
    with pytest.raises(InvalidArgument):
        validate_key(key)


def test_valid_keys():
    assert validate_key("a.jpg") == "a.jpg"
    assert validate_key("photos/2024/summer/a.jpg") == "photos/2024/summer/a.jpg"
