from __future__ import annotations

from datetime import datetime

import pytest

from cpmkeeper.models.conflict import (
    AnalysisResult,
    TransitiveConflict,
    TransitiveConstraint,
    Vulnerability,
    VulnerablePackageInfo,
)


def _conflict(**overrides: object) -> TransitiveConflict:
    values = dict(
        package_id="Humanizer.Core",
        central_version="2.14.1",
        transitive_version="3.0.0",
        transitive_parents=["Humanizer.Core.af"],
        projects=["Api"],
        framework="net8.0",
    )
    values.update(overrides)
    return TransitiveConflict(**values)  # type: ignore[arg-type]


@pytest.mark.unit
class TestTransitiveConflict:
    """Tests for TransitiveConflict identity and rendering."""

    def test_key_is_case_insensitive_per_framework(self) -> None:
        assert _conflict().key == ("humanizer.core", "net8.0")
        assert _conflict(package_id="HUMANIZER.CORE").key == _conflict().key
        assert _conflict(framework="").key != _conflict().key

    def test_copy_detaches_lists(self) -> None:
        original = _conflict()
        duplicate = original.copy()

        duplicate.projects.append("Web")
        duplicate.transitive_parents.clear()

        assert original.projects == ["Api"]
        assert original.transitive_parents == ["Humanizer.Core.af"]

    def test_display_string(self) -> None:
        assert str(_conflict()) == (
            "Humanizer.Core is set to 2.14.1 but Humanizer.Core.af transitively "
            "requires 3.0.0 (in Api)"
        )

    def test_display_string_without_parents(self) -> None:
        text = _conflict(transitive_parents=[]).to_display_string()
        assert "but other packages transitively" in text

    def test_to_json(self) -> None:
        data = _conflict().to_json()

        assert data["package_id"] == "Humanizer.Core"
        assert data["framework"] == "net8.0"
        assert data["transitive_parents"] == ["Humanizer.Core.af"]


@pytest.mark.unit
class TestVulnerablePackageInfo:
    def test_key_and_copy(self) -> None:
        info = VulnerablePackageInfo(
            package_id="System.Text.Json",
            resolved_version="8.0.0",
            is_transitive=True,
            vulnerabilities=[Vulnerability("High", "https://example.test/1")],
            projects=["Api"],
        )

        duplicate = info.copy()
        duplicate.projects.append("Web")

        assert info.key == ("system.text.json", "8.0.0")
        assert info.projects == ["Api"]
        assert duplicate.vulnerabilities == info.vulnerabilities

    def test_to_json(self) -> None:
        info = VulnerablePackageInfo(
            package_id="A",
            resolved_version="1.0",
            is_transitive=False,
            vulnerabilities=[Vulnerability("Low", "u")],
        )

        assert info.to_json()["vulnerabilities"] == [
            {"severity": "Low", "advisory_url": "u"}
        ]


@pytest.mark.unit
class TestTransitiveConstraint:
    def test_to_json(self) -> None:
        constraint = TransitiveConstraint(
            package_id="System.Memory",
            required_version="4.5.5",
            version_range="[4.5.5]",
            is_exact=True,
            required_by=["A", "B"],
        )

        assert constraint.to_json() == {
            "package_id": "System.Memory",
            "required_version": "4.5.5",
            "version_range": "[4.5.5]",
            "is_exact": True,
            "required_by": ["A", "B"],
        }


@pytest.mark.unit
class TestAnalysisResult:
    """Tests for AnalysisResult snapshots."""

    def test_empty(self) -> None:
        result = AnalysisResult.empty()

        assert result.transitive_conflicts == []
        assert result.vulnerable_packages == []
        assert result.last_updated is None
        assert result.is_running is False
        assert result.error is None
        assert result.has_findings() is False

    def test_has_findings(self) -> None:
        assert AnalysisResult(transitive_conflicts=[_conflict()]).has_findings()

    def test_is_frozen(self) -> None:
        with pytest.raises(AttributeError):
            AnalysisResult().is_running = True  # type: ignore[misc]

    def test_to_json(self) -> None:
        stamp = datetime(2024, 5, 1, 10, 0, 0)
        result = AnalysisResult(
            transitive_conflicts=[_conflict()],
            last_updated=stamp,
            error="Transitive analysis: boom",
        )

        data = result.to_json()

        assert data["last_updated"] == "2024-05-01T10:00:00"
        assert data["error"] == "Transitive analysis: boom"
        assert len(data["transitive_conflicts"]) == 1
        assert data["vulnerable_packages"] == []

    def test_to_json_without_timestamp(self) -> None:
        assert AnalysisResult().to_json()["last_updated"] is None
