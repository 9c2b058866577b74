import yaml

from projectbrowser.catalog.sources.static import StaticCatalogSource

CATALOG = {
    "label": "Site catalog",
    "projects": [
        {
            "machine_name": "token",
            "title": "Token",
            "project_usage_total": 500,
            "is_maintained": True,
            "categories": [{"id": "dev", "name": "Developer tools"}],
            "created": 2020,
        },
        {
            "machine_name": "admin_toolbar",
            "title": "Admin Toolbar",
            "project_usage_total": 900,
            "is_covered": True,
            "created": 2022,
        },
        {
            "machine_name": "pathauto",
            "title": "Pathauto",
            "package_name": "drupal/pathauto",
            "project_usage_total": 100,
            "categories": [{"id": "seo", "name": "SEO"}],
            "created": 2018,
        },
    ],
}


def _source(tmp_path, catalog=CATALOG):
    path = tmp_path / "catalog.yaml"
    path.write_text(yaml.safe_dump(catalog))
    return StaticCatalogSource(str(path))


def test_lists_projects_with_defaults(tmp_path):
    page = _source(tmp_path).get_projects({})

    assert page.error is None
    assert page.total_results == 3
    assert page.plugin_label == "Site catalog"
    token = page.list[0]
    assert token.id == "token"
    assert token.package_name == "drupal/token"
    assert token.status is None


def test_search_and_filters(tmp_path):
    source = _source(tmp_path)

    assert [p.id for p in source.get_projects({"search": "path"}).list] == ["pathauto"]
    assert [p.id for p in source.get_projects({"categories": "seo,dev"}).list] == ["token", "pathauto"]
    assert [p.id for p in source.get_projects({"maintenance_status": "1"}).list] == ["token"]
    assert [p.id for p in source.get_projects({"security_advisory_coverage": "1"}).list] == ["admin_toolbar"]


def test_sorting_and_paging(tmp_path):
    source = _source(tmp_path)

    assert [p.id for p in source.get_projects({"sort": "a_z"}).list] == ["admin_toolbar", "pathauto", "token"]
    assert [p.id for p in source.get_projects({"sort": "usage_total"}).list] == ["admin_toolbar", "token", "pathauto"]
    assert [p.id for p in source.get_projects({"sort": "created"}).list] == ["admin_toolbar", "token", "pathauto"]

    page = source.get_projects({"sort": "a_z", "limit": 2, "page": 1})
    assert page.total_results == 3
    assert [p.id for p in page.list] == ["token"]


def test_unreadable_catalog_returns_error_page(tmp_path):
    page = StaticCatalogSource(str(tmp_path / "missing.yaml")).get_projects({})

    assert page.list == ()
    assert page.total_results == 0
    assert page.error.startswith("Unable to read the local catalog")


def test_project_without_machine_name_is_an_error(tmp_path):
    page = _source(tmp_path, {"projects": [{"title": "Nameless"}]}).get_projects({})

    assert "machine_name" in page.error
