"""Tests for buildpacks/maven.py module."""

import os

import pytest

from buildpack_engine.buildpacks.maven import (
    DEFAULT_BUILD_ARGS,
    MavenBuildpack,
    build_args,
    ensure_unix_line_endings,
)
from buildpack_engine.execution.mock import mock
from buildpack_engine.testing import make_context, run_build, run_detect, write_files
from buildpack_engine.types import DetectStatus

MVN_INSTALLED = mock(r"command -v mvn", stdout="/usr/bin/mvn\n")


class TestDetect:
    """Tests for MavenBuildpack.detect."""

    @pytest.mark.parametrize(
        "files, env, want",
        [
            pytest.param({"pom.xml": ""}, {}, DetectStatus.PASS, id="pom.xml"),
            pytest.param(
                {".mvn/extensions.xml": ""}, {}, DetectStatus.PASS, id=".mvn/extensions.xml"
            ),
            pytest.param({}, {}, DetectStatus.SKIP, id="no pom.xml"),
            pytest.param(
                {"testmodule/pom.xml": ""},
                {"GOOGLE_BUILDABLE": "testmodule"},
                DetectStatus.PASS,
                id="use GOOGLE_BUILDABLE",
            ),
            pytest.param(
                {"pom.xml": "", "other/README.md": ""},
                {"GOOGLE_BUILDABLE": "other"},
                DetectStatus.SKIP,
                id="GOOGLE_BUILDABLE overrides root pom.xml",
            ),
        ],
    )
    def test_detect(self, tmp_path, files, env, want):
        """Detection looks for Maven files, under the buildable when set."""
        result = run_detect(MavenBuildpack(), tmp_path / "app", files=files, env=env)

        assert result.status is want

    @pytest.mark.parametrize("buildable", ["../outside", "module/../../outside", "ABSOLUTE"])
    def test_buildable_outside_app_root(self, tmp_path, buildable):
        """A buildable that leaves the application root is a detect error."""
        write_files(tmp_path / "outside", {"pom.xml": ""})
        if buildable == "ABSOLUTE":
            buildable = str(tmp_path / "outside")

        result = run_detect(
            MavenBuildpack(), tmp_path / "app", env={"GOOGLE_BUILDABLE": buildable}
        )

        assert result.status is DetectStatus.ERROR
        assert "GOOGLE_BUILDABLE" in result.diagnostic

    def test_buildable_symlink_outside_app_root(self, tmp_path):
        """A buildable symlinked out of the application root is rejected."""
        write_files(tmp_path / "outside", {"pom.xml": ""})
        app = tmp_path / "app"
        app.mkdir()
        (app / "link").symlink_to(tmp_path / "outside", target_is_directory=True)

        result = run_detect(MavenBuildpack(), app, env={"GOOGLE_BUILDABLE": "link"})

        assert result.status is DetectStatus.ERROR

    def test_buildable_normalized(self, tmp_path):
        """Redundant segments inside the root are accepted."""
        result = run_detect(
            MavenBuildpack(),
            tmp_path / "app",
            files={"service/pom.xml": ""},
            env={"GOOGLE_BUILDABLE": "./other/../service/"},
        )

        assert result.status is DetectStatus.PASS


class TestCrLfRewrite:
    """Tests for ensure_unix_line_endings."""

    @pytest.mark.parametrize(
        "content, expected, rewritten",
        [
            ("#!/bin/sh\r\n\r\necho Windows\r\n", "#!/bin/sh\n\necho Windows\n", True),
            ("#!/bin/sh\n\necho Unix\n", "#!/bin/sh\n\necho Unix\n", False),
        ],
    )
    def test_rewrite(self, tmp_path, content, expected, rewritten):
        """CRLF line endings are replaced; LF files are left alone."""
        script = tmp_path / "mvnw"
        script.write_bytes(content.encode())

        assert ensure_unix_line_endings(make_context(tmp_path), script) is rewritten
        assert script.read_bytes() == expected.encode()


class TestBuildArgs:
    """Tests for build_args."""

    def test_default(self, tmp_path):
        """Without an override the default goals are used."""
        assert build_args(make_context(tmp_path)) == DEFAULT_BUILD_ARGS

    def test_override_is_split(self, tmp_path):
        """The override is split like a shell would."""
        ctx = make_context(
            tmp_path, env={"GOOGLE_MAVEN_BUILD_ARGS": "clean package -Dfoo='a b'"}
        )
        assert build_args(ctx) == ["clean", "package", "-Dfoo=a b"]


class TestBuild:
    """Tests for MavenBuildpack.build."""

    def test_maven_build_argument(self, tmp_path):
        """GOOGLE_MAVEN_BUILD_ARGS replaces the default goals."""
        app = tmp_path / "app"
        write_files(app, {"pom.xml": "<project/>"})

        result = run_build(
            MavenBuildpack(),
            app,
            env={"GOOGLE_MAVEN_BUILD_ARGS": "clean package"},
            mocks=[MVN_INSTALLED, mock(r"^mvn ")],
        )

        assert result.command_executed("mvn clean package")
        assert not result.command_executed(
            "mvn clean package --batch-mode -DskipTests -Dhttp.keepAlive=false"
        )

    def test_default_command_and_repository_layer(self, tmp_path):
        """The default build uses batch mode and the cached local repository."""
        app = tmp_path / "app"
        layers = tmp_path / "layers"
        write_files(app, {"pom.xml": "<project/>", "target/app-1.0.jar": ""})

        result = run_build(
            MavenBuildpack(), app, layers_dir=layers, mocks=[MVN_INSTALLED, mock(r"^mvn ")]
        )

        assert result.command_executed(
            "mvn clean package --batch-mode -DskipTests -Dhttp.keepAlive=false"
        )
        record = result.executor.invocations[-1]
        assert record.cwd == str(app)
        assert (layers / "google.java.maven" / "m2.json").exists()
        assert result.outcome.processes == {"web": f"java -jar {app / 'target' / 'app-1.0.jar'}"}

    def test_wrapper_preferred(self, tmp_path):
        """A checked-in ./mvnw is fixed up and used instead of mvn."""
        app = tmp_path / "app"
        write_files(app, {"pom.xml": "<project/>", "mvnw": "#!/bin/sh\r\nexec mvn \"$@\"\r\n"})

        result = run_build(MavenBuildpack(), app, mocks=[mock(r"^\./mvnw ")])

        assert result.command_executed("./mvnw clean package")
        assert b"\r\n" not in (app / "mvnw").read_bytes()
        assert os.access(app / "mvnw", os.X_OK)

    def test_buildable_module(self, tmp_path):
        """The build runs in the buildable directory."""
        app = tmp_path / "app"
        write_files(app, {"service/pom.xml": "<project/>"})

        result = run_build(
            MavenBuildpack(),
            app,
            env={"GOOGLE_BUILDABLE": "service"},
            mocks=[MVN_INSTALLED, mock(r"^mvn ")],
        )

        assert result.executor.invocations[-1].cwd == str(app / "service")

    def test_buildable_outside_app_root_fails(self, tmp_path):
        """The build refuses to run outside the application root."""
        app = tmp_path / "app"
        write_files(tmp_path / "outside", {"pom.xml": "<project/>", "mvnw": "#!/bin/sh\r\n"})
        app.mkdir()

        with pytest.raises(ValueError, match="GOOGLE_BUILDABLE"):
            run_build(MavenBuildpack(), app, env={"GOOGLE_BUILDABLE": "../outside"})

        assert (tmp_path / "outside" / "mvnw").read_bytes() == b"#!/bin/sh\r\n"

    def test_maven_missing(self, tmp_path):
        """Without mvn or a wrapper the build fails."""
        app = tmp_path / "app"
        write_files(app, {"pom.xml": "<project/>"})

        with pytest.raises(RuntimeError, match="Maven is not installed"):
            run_build(MavenBuildpack(), app, mocks=[mock(r"command -v mvn", stdout="")])
