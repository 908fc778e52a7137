"""包缓存与拉取器测试 - 缓存复用、完整性校验、失败清理"""

from __future__ import annotations

import hashlib
import io
import tarfile
import tempfile
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from depforge.core.dep.cache import PackageCache
from depforge.core.dep.fetcher import PackageFetcher
from depforge.core.dep.models import ResolvedPackage
from depforge.core.exceptions import IntegrityError, StorageError
from depforge.core.models import Dependency, ProjectFlags, ProjectPath, Version


def _archive(files: dict[str, bytes]) -> bytes:
    buf = io.BytesIO()
    with tarfile.open(fileobj=buf, mode="w:gz") as tar:
        for name, data in files.items():
            info = tarfile.TarInfo(name)
            info.size = len(data)
            tar.addfile(info, io.BytesIO(data))
    return buf.getvalue()


class FakeClient:
    """按 URL 返回预置归档内容的注册中心客户端"""

    def __init__(self, payloads: dict[str, bytes]) -> None:
        self.payloads = payloads
        self.downloads: list[str] = []

    def archive_url(self, data_dir: str, package: ProjectPath, version: Version) -> str:
        return f"https://r.example/{data_dir}/{package.to_filesystem_path()}/{version}.tar.gz"

    def download_archive(self, url: str, dest: Path) -> str:
        self.downloads.append(url)
        body = self.payloads[url]
        dest.write_bytes(body)
        return hashlib.md5(body).hexdigest()


def _dep(storage: Path, name: str, version: str, body: bytes, md5: str | None = None) -> Dependency:
    return Dependency(
        package=ProjectPath(name),
        version=Version(version),
        flags=ProjectFlags.DIRECT_DEPENDENCY,
        package_dir=storage / name / version,
        md5=md5 if md5 is not None else hashlib.md5(body).hexdigest(),
    )


def _url(name: str, version: str) -> str:
    return f"https://r.example/data/{name.replace('.', '/')}/{version}.tar.gz"


class TestPackageCache:
    def test_marker_location(self, tmp_path: Path) -> None:
        assert PackageCache.marker_path(tmp_path / "org.a" / "1.0") == tmp_path / "org.a" / "archive.md5"

    def test_valid_requires_dir_and_marker(self, tmp_path: Path) -> None:
        cache = PackageCache()
        vdir = tmp_path / "org.a" / "1.0"
        assert not cache.is_valid(vdir, "abc")
        vdir.mkdir(parents=True)
        assert not cache.is_valid(vdir, "abc")
        cache.write_marker(vdir, "abc")
        assert cache.is_valid(vdir, "abc")
        assert not cache.is_valid(vdir, "def")
        assert not cache.is_valid(vdir, "")


class TestMaterialize:
    def test_download_and_unpack(self, tmp_path: Path) -> None:
        body = _archive({"depforge.yml": b"files: a.c\n", "a.c": b"int a;\n"})
        client = FakeClient({_url("org.a", "1.0"): body})
        dep = _dep(tmp_path, "org.a", "1.0", body)

        path = PackageFetcher(client).materialize(dep, "data")

        assert (path / "a.c").read_bytes() == b"int a;\n"
        assert (tmp_path / "org.a" / "archive.md5").read_text() == dep.md5
        assert sorted(p.name for p in (tmp_path / "org.a").iterdir()) == ["1.0", "archive.md5"]

    def test_valid_cache_skips_download(self, tmp_path: Path) -> None:
        body = _archive({"a.c": b"x"})
        client = FakeClient({_url("org.a", "1.0"): body})
        dep = _dep(tmp_path, "org.a", "1.0", body)
        fetcher = PackageFetcher(client)

        fetcher.materialize(dep, "data")
        fetcher.materialize(dep, "data")

        assert len(client.downloads) == 1

    def test_corrupted_marker_redownloads_clean(self, tmp_path: Path) -> None:
        body = _archive({"a.c": b"fresh"})
        client = FakeClient({_url("org.a", "1.0"): body})
        dep = _dep(tmp_path, "org.a", "1.0", body)
        vdir = dep.package_dir
        vdir.mkdir(parents=True)
        (vdir / "stale.c").write_text("old")
        (tmp_path / "org.a" / "archive.md5").write_text("0" * 32)

        PackageFetcher(client).materialize(dep, "data")

        assert client.downloads
        assert sorted(p.name for p in vdir.iterdir()) == ["a.c"]

    def test_integrity_failure_leaves_nothing(self, tmp_path: Path) -> None:
        body = _archive({"a.c": b"x"})
        client = FakeClient({_url("org.a", "1.0"): body})
        dep = _dep(tmp_path, "org.a", "1.0", body, md5="f" * 32)

        with pytest.raises(IntegrityError, match="md5 不匹配") as exc:
            PackageFetcher(client).materialize(dep, "data")

        assert exc.value.expected == "f" * 32
        assert list((tmp_path / "org.a").iterdir()) == []

    def test_empty_declared_md5_rejected(self, tmp_path: Path) -> None:
        """注册中心未给出 md5 时不能跳过校验"""
        body = _archive({"a.c": b"x"})
        client = FakeClient({_url("org.a", "1.0"): body})
        dep = _dep(tmp_path, "org.a", "1.0", body, md5="")

        with pytest.raises(IntegrityError):
            PackageFetcher(client).materialize(dep, "data")

        assert not dep.package_dir.exists()
        assert not (tmp_path / "org.a" / "archive.md5").exists()

    def test_staging_dir_failure_is_storage_error(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        body = _archive({"a.c": b"x"})
        client = FakeClient({_url("org.a", "1.0"): body})
        dep = _dep(tmp_path, "org.a", "1.0", body)

        def no_space(*args, **kwargs):
            raise OSError(28, "No space left on device")

        monkeypatch.setattr(tempfile, "mkdtemp", no_space)
        with pytest.raises(StorageError, match="解包失败") as exc:
            PackageFetcher(client).materialize(dep, "data")

        assert exc.value.path == str(dep.package_dir)
        assert not dep.package_dir.exists()

    def test_failed_unpack_removes_version_dir(self, tmp_path: Path) -> None:
        body = b"this is not a gzip stream"
        client = FakeClient({_url("org.a", "1.0"): body})
        dep = _dep(tmp_path, "org.a", "1.0", body)

        with pytest.raises(StorageError, match="解包失败"):
            PackageFetcher(client).materialize(dep, "data")

        assert not dep.package_dir.exists()
        assert list((tmp_path / "org.a").iterdir()) == []

    def test_unsafe_member_rejected(self, tmp_path: Path) -> None:
        body = _archive({"../escape.c": b"x"})
        client = FakeClient({_url("org.a", "1.0"): body})
        dep = _dep(tmp_path, "org.a", "1.0", body)

        with pytest.raises(StorageError):
            PackageFetcher(client).materialize(dep, "data")

        assert not (tmp_path / "org.a" / "escape.c").exists()
        assert not dep.package_dir.exists()

    def test_download_failure_is_storage_error(self, tmp_path: Path) -> None:
        client = MagicMock()
        client.archive_url.return_value = "https://r.example/x.tar.gz"
        client.download_archive.side_effect = ConnectionError("reset")
        dep = _dep(tmp_path, "org.a", "1.0", b"")
        dep.md5 = "abc"

        with pytest.raises(StorageError, match="无法获取归档"):
            PackageFetcher(client).materialize(dep, "data")

    def test_missing_package_dir(self, tmp_path: Path) -> None:
        dep = Dependency(package=ProjectPath("org.a"))
        with pytest.raises(StorageError, match="未分配存储目录"):
            PackageFetcher(FakeClient({})).materialize(dep, "data")


class TestMaterializeAll:
    @pytest.mark.parametrize("workers", [1, 4])
    def test_all_packages(self, tmp_path: Path, workers: int) -> None:
        payloads = {}
        resolved = []
        for name in ("org.a", "org.b", "org.c"):
            body = _archive({f"{name}.c": name.encode()})
            payloads[_url(name, "1")] = body
            resolved.append(ResolvedPackage(_dep(tmp_path, name, "1", body), direct=True))

        paths = PackageFetcher(FakeClient(payloads), max_workers=workers).materialize_all(resolved, "data")

        assert sorted(p.parent.name for p in paths) == ["org.a", "org.b", "org.c"]

    def test_first_error_raised_after_all_complete(self, tmp_path: Path) -> None:
        good = _archive({"a.c": b"x"})
        bad = _archive({"b.c": b"y"})
        client = FakeClient({_url("org.a", "1"): good, _url("org.b", "1"): bad})
        resolved = [
            ResolvedPackage(_dep(tmp_path, "org.b", "1", bad, md5="0" * 32), direct=True),
            ResolvedPackage(_dep(tmp_path, "org.a", "1", good), direct=True),
        ]

        with pytest.raises(IntegrityError):
            PackageFetcher(client, max_workers=2).materialize_all(resolved, "data")

        assert (tmp_path / "org.a" / "1" / "a.c").is_file()

    def test_empty(self) -> None:
        assert PackageFetcher(FakeClient({})).materialize_all([], "data") == []
