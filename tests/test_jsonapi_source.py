import json
from unittest.mock import patch
from urllib.error import HTTPError

from projectbrowser.catalog.sources.jsonapi import JsonApiSource, numeric_semver

FILTER_VALUES = {
    "drupal_version": {"supported": True},
    "maintained": ["maint-1"],
    "active": ["active-1"],
}

PROJECTS_BODY = {
    "data": [
        {
            "id": "8c2f",
            "attributes": {
                "field_project_machine_name": "token",
                "title": "Token",
                "field_composer_namespace": "drupal/token",
                "field_core_semver_minimum": 10000000,
                "field_core_semver_maximum": 11999999,
                "field_security_advisory_coverage": "covered",
                "field_active_installs": json.dumps({"10.x": "5", "11.x": "7"}),
                "body": {"summary": "Tokens", "value": '<a href="/node/1">docs</a>', "format": None},
            },
            "relationships": {
                "field_maintenance_status": {
                    "data": {"type": "taxonomy_term--maintenance_status", "id": "maint-1"}
                },
                "field_module_categories": {
                    "data": [{"type": "taxonomy_term--module_categories", "id": "cat-1"}]
                },
            },
        }
    ],
    "included": [
        {
            "type": "taxonomy_term--module_categories",
            "id": "cat-1",
            "attributes": {"name": "Developer tools"},
        }
    ],
    "meta": {"count": 42},
}


def _source():
    return JsonApiSource("https://www.drupal.org/", "11.1.0")


def _fake_request(filter_values=FILTER_VALUES, body=PROJECTS_BODY):
    requested = []

    def request(url):
        requested.append(url)
        if "project-browser-filters" in url:
            return {"code": 200, "data": filter_values}
        return {"code": 200, "data": body}

    request.requested = requested
    return request


def test_numeric_semver():
    assert numeric_semver("10.4.12") == 10004012
    assert numeric_semver("11.1.0-rc1") == 11001000
    assert numeric_semver("11") == 11000000
    assert numeric_semver("dev") == 0


def test_get_projects_maps_catalog_entries():
    source = _source()
    request = _fake_request()

    with patch.object(source, "_request_json", side_effect=request):
        page = source.get_projects({"page": 0, "limit": 12, "search": "tok"})

    assert page.error is None
    assert page.total_results == 42
    project = page.list[0]
    assert project.id == "token"
    assert project.package_name == "drupal/token"
    assert project.is_compatible is True
    assert project.is_maintained is True
    assert project.is_covered is True
    assert project.project_usage_total == 12
    assert project.categories[0].name == "Developer tools"
    assert project.body["value"] == '<a href="https://www.drupal.org/node/1">docs</a>'
    assert project.url == "https://www.drupal.org/project/token"

    projects_url = request.requested[-1]
    assert "/jsonapi/index/project_modules?" in projects_url
    assert "filter%5Bfulltext%5D=tok" in projects_url


def test_unsupported_core_version_returns_error_page():
    source = _source()
    values = {"drupal_version": {"supported": False, "message": "Drupal 9 is not supported."}}

    with patch.object(source, "_request_json", side_effect=_fake_request(filter_values=values)):
        page = source.get_projects({})

    assert page.list == ()
    assert page.error == "Drupal 9 is not supported."


def test_forbidden_response_returns_error_page():
    source = _source()
    error = HTTPError("https://www.drupal.org/jsonapi", 403, "Forbidden", {}, None)

    with patch("projectbrowser.catalog.sources.jsonapi.urlopen", side_effect=error):
        page = source.get_projects({})

    assert page.list == ()
    assert "might have been blocked" in page.error
    assert page.error.endswith("https://www.drupal.org/project/project_module.")


def test_convert_query_options():
    source = _source()

    with patch.object(source, "filter_values", return_value=FILTER_VALUES):
        converted = source.convert_query_options(
            {"sort": "usage_total", "maintenance_status": "1", "page": "2"}
        )
        by_title = source.convert_query_options({"sort": "a_z"})
        best_match = source.convert_query_options({"sort": "best_match"})

    assert converted["sort"] == "-active_installs_total"
    assert converted["maintenance_status"] == "maint-1"
    assert converted["development_status"] is None
    assert converted["page"] == 2
    assert converted["limit"] == 12
    assert by_title["sort"] == "title"
    assert best_match["sort"] is None


def test_add_multivalue_filter():
    params = JsonApiSource.add_multivalue_filter("security_coverage", "revoked", {}, negate=True)

    assert params == {
        "filter[n_security_coverage][value][0]": "revoked",
        "filter[n_security_coverage][operator]": "NOT IN",
        "filter[n_security_coverage][path]": "security_coverage",
    }
    assert JsonApiSource.add_multivalue_filter("x", None, {"a": 1}) == {"a": 1}


def test_filter_values_are_cached():
    source = _source()
    request = _fake_request()

    with patch.object(source, "_request_json", side_effect=request):
        source.filter_values()
        source.filter_values()

    assert len(request.requested) == 1


def test_unreadable_project_entry_returns_error_page():
    source = _source()
    entry = json.loads(json.dumps(PROJECTS_BODY["data"][0]))
    entry["attributes"]["field_active_installs"] = "not json"
    body = dict(PROJECTS_BODY, data=[entry])

    with patch.object(source, "_request_json", side_effect=_fake_request(body=body)):
        page = source.get_projects({})

    assert page.list == ()
    assert page.total_results == 0
    assert "could not be read" in page.error


def test_project_entry_without_machine_name_returns_error_page():
    source = _source()
    entry = json.loads(json.dumps(PROJECTS_BODY["data"][0]))
    del entry["attributes"]["field_project_machine_name"]
    body = dict(PROJECTS_BODY, data=[entry])

    with patch.object(source, "_request_json", side_effect=_fake_request(body=body)):
        page = source.get_projects({})

    assert page.list == ()
    assert page.error.startswith("The catalog at https://www.drupal.org returned data")


def test_fetch_data_keeps_included_from_later_pages():
    source = _source()
    included = [{"type": "taxonomy_term--module_categories", "id": "cat-2", "attributes": {"name": "SEO"}}]
    pages = [
        {"code": 200, "data": {
            "data": [{"id": "1"}],
            "links": {"next": {"href": "https://www.drupal.org/jsonapi/next"}},
        }},
        {"code": 200, "data": {"data": [{"id": "2"}], "included": included}},
    ]

    with patch.object(source, "_request_json", side_effect=pages):
        result = source.fetch_data("https://www.drupal.org/jsonapi/first", all_data=True)

    assert [item["id"] for item in result["data"]] == ["1", "2"]
    assert result["included"] == included
    assert result["message"] == ""
