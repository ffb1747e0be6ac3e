import pytest

from play_publisher.edits import open_edit
from play_publisher.errors import ConfigurationError
from play_publisher.existing import snapshot_existing_app_files
from play_publisher.models import ExistingAppFiles, ExpansionFileSet
from play_publisher.upload import (
    ExpansionState,
    UploadRequest,
    expand_release_name,
    merge_version_codes,
    upload_app_files,
)


@pytest.fixture
def session(backend, context):
    return open_edit(backend, context)


def upload(backend, context, session, request, existing=None):
    if existing is None:
        existing = snapshot_existing_app_files(backend, session)
    return upload_app_files(backend, context, session, existing, request)


class TestUploadAppFiles:
    def test_single_apk(self, backend, context, session, make_app_file, output) -> None:
        app_file = make_app_file()

        outcome = upload(backend, context, session, UploadRequest([app_file]))

        assert outcome.success
        assert outcome.version_codes == (42,)
        assert backend.called("upload_apk") == [("upload_apk", "org.example.app", "the-edit-id", app_file.path)]
        log = output()
        assert "Uploading 1 file(s) with application ID: org.example.app" in log
        assert "         APK file: build/outputs/apk/app.apk" in log
        assert f"       SHA-1 hash: {app_file.sha1_hash}" in log
        assert "      versionCode: 42" in log
        assert "      versionName: 1.42" in log
        assert "    minSdkVersion: 21" in log

    def test_bundle(self, backend, context, session, make_app_file, output) -> None:
        app_file = make_app_file("build/outputs/bundle/release/bundle.aab", version_code=43)

        outcome = upload(backend, context, session, UploadRequest([app_file]))

        assert outcome.version_codes == (43,)
        assert len(backend.called("upload_bundle")) == 1
        assert not backend.called("upload_apk")
        assert "         AAB file: build/outputs/bundle/release/bundle.aab" in output()

    def test_duplicate_aborts_before_uploading(self, backend, context, session, make_app_file, output) -> None:
        first = make_app_file("a/first.apk", version_code=10)
        duplicate = make_app_file("b/second.apk", version_code=20)
        third = make_app_file("c/third.apk", version_code=30)
        existing = ExistingAppFiles(hashes=frozenset({duplicate.sha1_hash}))

        outcome = upload(backend, context, session, UploadRequest([first, duplicate, third]), existing)

        assert not outcome.success
        assert outcome.duplicate_file == duplicate.path
        assert [c[3] for c in backend.called("upload_apk")] == [first.path]
        assert "This file already exists in the Google Play account; it cannot be uploaded again" in output()

    def test_duplicate_detection_ignores_case(self, backend, context, session, make_app_file) -> None:
        app_file = make_app_file()
        backend.apks = [{"versionCode": 41, "binary": {"sha1": app_file.sha1_hash.upper()}}]

        outcome = upload(backend, context, session, UploadRequest([app_file]))

        assert not outcome.success
        assert not backend.called("upload_apk")

    def test_no_files(self, backend, context, session) -> None:
        with pytest.raises(ConfigurationError):
            upload(backend, context, session, UploadRequest([]))

    def test_mixed_formats_are_rejected(self, backend, context, session, make_app_file) -> None:
        files = [make_app_file("app.apk"), make_app_file("app.aab", version_code=43)]

        with pytest.raises(ConfigurationError):
            upload(backend, context, session, UploadRequest(files))
        assert not backend.called("upload_apk")


class TestDeobfuscationFiles:
    def test_mapping_and_symbols_are_uploaded(self, backend, context, session, make_app_file, write_file) -> None:
        mapping = write_file("build/outputs/mapping/mapping.txt", b"a -> b")
        symbols = write_file("build/outputs/native/symbols.zip", b"PK")
        app_file = make_app_file(mapping_file=mapping, native_debug_symbol_file=symbols)

        upload(backend, context, session, UploadRequest([app_file]))

        assert backend.called("upload_deobfuscation_file") == [
            ("upload_deobfuscation_file", "org.example.app", "the-edit-id", 42, "proguard", mapping),
            ("upload_deobfuscation_file", "org.example.app", "the-edit-id", 42, "nativeCode", symbols),
        ]

    def test_empty_mapping_file_is_skipped(self, backend, context, session, make_app_file, write_file, output):
        mapping = write_file("build/outputs/mapping/mapping.txt", b"")
        app_file = make_app_file(mapping_file=mapping)

        outcome = upload(backend, context, session, UploadRequest([app_file]))

        assert outcome.success
        assert not backend.called("upload_deobfuscation_file")
        assert "Ignoring empty ProGuard mapping file: build/outputs/mapping/mapping.txt" in output()

    def test_mapping_uses_each_uploaded_version_code(self, backend, context, session, make_app_file, write_file):
        files = [
            make_app_file("one/app.apk", version_code=10, mapping_file=write_file("one/mapping.txt")),
            make_app_file("two/app.apk", version_code=20, mapping_file=write_file("two/mapping.txt")),
        ]

        upload(backend, context, session, UploadRequest(files))

        assert [(c[3], c[5].parent.name) for c in backend.called("upload_deobfuscation_file")] == [
            (10, "one"),
            (20, "two"),
        ]


class TestExpansionFiles:
    def test_later_version_reuses_file_uploaded_in_same_edit(
        self, backend, context, session, make_app_file, write_file
    ) -> None:
        v20 = make_app_file("apk/v20.apk", version_code=20)
        v10 = make_app_file("apk/v10.apk", version_code=10)
        main = write_file("obb/main.10.org.example.app.obb")
        request = UploadRequest(
            [v20, v10],
            expansion_files={10: ExpansionFileSet(main_file=main)},
            use_previous_expansion_files_if_missing=True,
        )

        upload(backend, context, session, request)

        assert backend.called("upload_expansion_file") == [
            ("upload_expansion_file", "org.example.app", "the-edit-id", 10, "main", main),
        ]
        assert backend.called("update_expansion_file") == [
            ("update_expansion_file", "org.example.app", "the-edit-id", 20, "main", 10),
        ]

    def test_nothing_is_reused_when_disabled(
        self, backend, context, session, make_app_file, write_file, output
    ) -> None:
        files = [make_app_file("apk/v10.apk", version_code=10), make_app_file("apk/v20.apk", version_code=20)]
        main = write_file("obb/main.10.org.example.app.obb")
        request = UploadRequest(files, expansion_files={10: ExpansionFileSet(main_file=main)})

        upload(backend, context, session, request)

        assert len(backend.called("upload_expansion_file")) == 1
        assert not backend.called("update_expansion_file")
        assert not backend.called("get_expansion_file")
        assert "Handling expansion files for versionCode 20\n- No main expansion file to apply\n" in output()

    def test_reuses_newest_existing_expansion_files(
        self, backend, context, session, make_app_file, output
    ) -> None:
        backend.apks = [{"versionCode": v, "binary": {"sha1": f"hash{v}"}} for v in (5, 6, 7)]
        backend.expansion_files = {
            (5, "main"): {"fileSize": "1024"},
            (6, "main"): {"referencesVersion": 5},
            (6, "patch"): {"fileSize": "0"},
            (5, "patch"): {"fileSize": "12"},
        }
        app_file = make_app_file(version_code=8)

        upload(backend, context, session, UploadRequest([app_file], use_previous_expansion_files_if_missing=True))

        assert [c[3:] for c in backend.called("get_expansion_file")] == [
            (7, "main"), (6, "main"),
            (7, "patch"), (6, "patch"), (5, "patch"),
        ]
        assert [c[3:] for c in backend.called("update_expansion_file")] == [(8, "main", 5), (8, "patch", 5)]
        assert "- Applying main expansion file from previous APK: 5" in output()

    def test_no_existing_expansion_files(self, backend, context, session, make_app_file, output) -> None:
        backend.apks = [{"versionCode": 5, "binary": {"sha1": "hash5"}}]
        app_file = make_app_file(version_code=8)

        upload(backend, context, session, UploadRequest([app_file], use_previous_expansion_files_if_missing=True))

        assert not backend.called("update_expansion_file")
        assert (
            "- No main expansion file to apply, and no existing APK with a main expansion file was found"
            in output()
        )

    def test_uploaded_file_takes_precedence_over_existing(
        self, backend, context, session, make_app_file, write_file
    ) -> None:
        backend.apks = [{"versionCode": 5, "binary": {"sha1": "hash5"}}]
        backend.expansion_files = {(5, "patch"): {"fileSize": "100"}}
        patch = write_file("obb/patch.10.org.example.app.obb")
        files = [make_app_file("a.apk", version_code=10), make_app_file("b.apk", version_code=11)]
        request = UploadRequest(
            files,
            expansion_files={10: ExpansionFileSet(patch_file=patch)},
            use_previous_expansion_files_if_missing=True,
        )

        upload(backend, context, session, request)

        assert [c[3:5] for c in backend.called("upload_expansion_file")] == [(10, "patch")]
        assert [c[3:] for c in backend.called("update_expansion_file")] == [(11, "patch", 10)]

    def test_bundles_ignore_expansion_settings(self, backend, context, session, make_app_file, write_file, output):
        app_file = make_app_file("app.aab", version_code=43)
        main = write_file("obb/main.43.org.example.app.obb")
        request = UploadRequest(
            [app_file],
            expansion_files={43: ExpansionFileSet(main_file=main)},
            use_previous_expansion_files_if_missing=True,
        )

        upload(backend, context, session, request)

        assert not backend.called("upload_expansion_file")
        assert not backend.called("get_expansion_file")
        assert "Ignoring expansion file settings, as we are uploading AAB file(s)" in output()


class TestReleaseAssembly:
    def test_additional_version_codes_are_merged(self, backend, context, session, make_app_file, output) -> None:
        app_file = make_app_file()
        request = UploadRequest([app_file], additional_version_codes=[5, 42, 55])

        outcome = upload(backend, context, session, request)

        assert outcome.version_codes == (42, 5, 55)
        assert len(backend.calls) == 4  # insert, list bundles, list apks, one upload
        assert "Including existing version codes: 5, 42, 55" in output()

    def test_release_name_is_expanded(self, backend, context, session, make_app_file) -> None:
        app_file = make_app_file(version_code=42, version_name="1.42")
        request = UploadRequest([app_file], release_name="Release: {versionName} ({versionCode})")

        outcome = upload(backend, context, session, request)

        assert outcome.release_name == "Release: 1.42 (42)"

    def test_update_priority_is_noted(self, backend, context, session, make_app_file, output) -> None:
        upload(backend, context, session, UploadRequest([make_app_file()], in_app_update_priority=4))

        assert "Setting in-app update priority to 4" in output()


def test_expand_release_name_without_name(make_app_file) -> None:
    assert expand_release_name(None, [make_app_file()]) is None
    assert expand_release_name("fixed", [make_app_file()]) == "fixed"


def test_merge_version_codes() -> None:
    assert merge_version_codes([42, 43], [1, 43, 42, 2]) == (42, 43, 1, 2)


def test_expansion_state_prefers_uploaded() -> None:
    state = ExpansionState(previous={"main": 5})
    assert state.latest("main") == 5
    assert state.latest("patch") is None
    state.uploaded["main"] = 10
    assert state.latest("main") == 10
