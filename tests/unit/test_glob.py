# ABOUTME: Unit tests for component path pattern matching
# ABOUTME: Covers recursive **, single-segment * and literal segments

import pytest

from saturn_deploy.smart.glob import glob_match


@pytest.mark.unit
class TestGlobMatch:
    @pytest.mark.parametrize(
        ("pattern", "path"),
        [
            ("apps/api/**", "apps/api/src/main.go"),
            ("apps/api/**", "apps/api/main.go"),
            ("apps/api/**", "apps/api"),
            ("**", "anything/at/all.txt"),
            ("**", "file.txt"),
            ("**/*.go", "main.go"),
            ("**/*.go", "cmd/server/main.go"),
            ("apps/**/Dockerfile", "apps/api/build/Dockerfile"),
            ("apps/**/Dockerfile", "apps/Dockerfile"),
            ("apps/*/src", "apps/web/src"),
            ("*.go", "main.go"),
            ("docs/README.md", "docs/README.md"),
        ],
    )
    def test_matches(self, pattern: str, path: str):
        assert glob_match(pattern, path) is True

    @pytest.mark.parametrize(
        ("pattern", "path"),
        [
            ("apps/api/**", "apps/web/main.go"),
            ("apps/api/**", "apps/api-v2/main.go"),
            ("apps/*/src", "apps/api/deep/src"),
            ("*.go", "cmd/main.go"),
            ("*.go", "main.py"),
            ("docs/README.md", "docs/readme.md"),
            ("apps/**/Dockerfile", "apps/api/Dockerfile.dev"),
        ],
    )
    def test_does_not_match(self, pattern: str, path: str):
        assert glob_match(pattern, path) is False

    def test_prefix_and_suffix_cannot_overlap(self):
        assert glob_match("ab*ba", "aba") is False
        assert glob_match("ab*ba", "abba") is True

    def test_multiple_stars_compared_literally(self):
        assert glob_match("a*b*c", "axbyc") is False
        assert glob_match("a*b*c", "a*b*c") is True
