"""
Utils (utils/)

Tests name conversion and dotted-path class loading.
"""

import pytest

from quarry.utils import camel, class_basename, import_string, snake, studly
from quarry.cache import MemoryStore


# ============================================================================
# Naming
# ============================================================================

class TestNaming:

    def test_snake(self):
        assert snake("UserProfile") == "user_profile"
        assert snake("userProfile") == "user_profile"
        assert snake("HTTPLog") == "http_log"
        assert snake("user") == "user"
        assert snake("") == ""

    def test_studly(self):
        assert studly("user_profile") == "UserProfile"
        assert studly("user-profile") == "UserProfile"
        assert studly("user") == "User"

    def test_camel(self):
        assert camel("user_profile") == "userProfile"
        assert camel("create_time") == "createTime"

    def test_class_basename(self):
        assert class_basename("app.models.User") == "User"
        assert class_basename(MemoryStore) == "MemoryStore"
        assert class_basename(MemoryStore()) == "MemoryStore"


# ============================================================================
# Loading
# ============================================================================

class TestImportString:

    def test_colon_path(self):
        assert import_string("quarry.cache:MemoryStore") is MemoryStore

    def test_dotted_path(self):
        assert import_string("quarry.cache.MemoryStore") is MemoryStore

    def test_non_string_passthrough(self):
        assert import_string(MemoryStore) is MemoryStore

    def test_not_dotted(self):
        with pytest.raises(ImportError):
            import_string("MemoryStore")

    def test_missing_attribute(self):
        with pytest.raises(ImportError):
            import_string("quarry.cache:Missing")

    def test_missing_module(self):
        with pytest.raises(ImportError):
            import_string("quarry.nothing_here.Thing")
