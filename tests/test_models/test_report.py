from __future__ import annotations

import pytest

from cpmkeeper.models.report import (
    ReportPackage,
    ReportVulnerability,
    ResolvedDependencyReport,
    RestoreWarning,
)


@pytest.mark.unit
class TestResolvedDependencyReport:
    """Tests for parsing ``dotnet list package --format json`` output."""

    def test_full_document(self) -> None:
        raw = {
            "version": 1,
            "parameters": "--include-transitive",
            "projects": [
                {
                    "path": "/repo/src/Api/Api.csproj",
                    "frameworks": [
                        {
                            "framework": "net8.0",
                            "topLevelPackages": [
                                {
                                    "id": "Humanizer",
                                    "requestedVersion": "2.14.1",
                                    "resolvedVersion": "2.14.1",
                                }
                            ],
                            "transitivePackages": [
                                {"id": "Humanizer.Core", "resolvedVersion": "2.14.1"}
                            ],
                        }
                    ],
                }
            ],
        }

        report = ResolvedDependencyReport.from_dict(raw)

        assert report.parameters == "--include-transitive"
        framework = report.projects[0].frameworks[0]
        assert framework.framework == "net8.0"
        assert framework.top_level_packages[0].requested_version == "2.14.1"
        assert framework.transitive_packages[0].requested_version is None

    def test_missing_sections_become_empty(self) -> None:
        report = ResolvedDependencyReport.from_dict({"projects": [{"path": "p"}]})

        assert report.version == 1
        assert report.projects[0].frameworks == []

    def test_malformed_entries_are_skipped(self) -> None:
        raw = {
            "version": "two",
            "projects": [
                "not-a-project",
                {"path": "p", "frameworks": {"framework": "net8.0"}},
            ],
        }

        report = ResolvedDependencyReport.from_dict(raw)

        assert report.version == 1
        assert len(report.projects) == 1
        assert report.projects[0].frameworks == []


@pytest.mark.unit
class TestReportPackage:
    def test_vulnerabilities(self) -> None:
        pkg = ReportPackage.from_dict(
            {
                "id": "System.Text.Json",
                "resolvedVersion": "8.0.0",
                "vulnerabilities": [
                    {
                        "severity": "High",
                        "advisoryurl": "https://github.com/advisories/GHSA-1",
                    },
                    "junk",
                ],
            }
        )

        assert pkg.vulnerabilities == [
            ReportVulnerability("High", "https://github.com/advisories/GHSA-1")
        ]

    def test_camel_case_advisory_key(self) -> None:
        vuln = ReportVulnerability.from_dict(
            {"severity": "Low", "advisoryUrl": "https://example.test/a"}
        )
        assert vuln.advisory_url == "https://example.test/a"


@pytest.mark.unit
class TestRestoreWarning:
    def test_to_json(self) -> None:
        warning = RestoreWarning("NU1608", "message", "/repo/App.sln")

        assert warning.to_json() == {
            "code": "NU1608",
            "message": "message",
            "project_path": "/repo/App.sln",
        }
