import json
import logging
import re
import time
from typing import Any, Dict, List, Optional
from urllib.error import HTTPError
from urllib.parse import urlencode
from urllib.request import Request, urlopen

from projectbrowser.catalog.models import Project, ProjectsResultsPage
from projectbrowser.catalog.sources.base import ProjectBrowserSourceBase

logger = logging.getLogger(__name__)

REVOKED_STATUS = "revoked"
COVERED_VALUES = ["covered"]
ITERATION_LIMIT = 10
FILTER_VALUES_TTL = 3600

SORT_FIELDS = {
    "usage_total": ("active_installs_total", "DESC"),
    "created": ("created", "DESC"),
    "best_match": (None, None),
    "a_z": ("title", "ASC"),
    "z_a": ("title", "DESC"),
}

_ROOT_RELATIVE = re.compile(r'(href|src)=(["\'])/(?!/)')


def numeric_semver(version: str) -> int:
    """Turn ``X.Y.Z`` into a comparable integer: 10.4.12 -> 10004012."""
    core = version.split("-", 1)[0].split("+", 1)[0]
    parts = (core.split(".") + ["0", "0"])[:3]
    try:
        major, minor, patch = (int(part or 0) for part in parts)
    except ValueError:
        return 0
    return int(f"{major}{minor:03d}{patch:03d}")


class JsonApiSource(ProjectBrowserSourceBase):
    plugin_id = "drupalorg_jsonapi"
    label = "Contrib modules"
    description = "Modules on Drupal.org queried via the JSON:API endpoint"

    def __init__(
        self,
        endpoint: str,
        core_version: str,
        timeout_seconds: int = 15,
        time_source=time.time,
    ):
        self.endpoint = endpoint.rstrip("/")
        self.jsonapi_endpoint = f"{self.endpoint}/jsonapi"
        self.core_version = core_version
        self.timeout_seconds = timeout_seconds
        self.time_source = time_source
        self._filter_values: Optional[Dict[str, Any]] = None
        self._filter_values_expire = 0.0
        self._categories: Optional[List[Dict[str, str]]] = None

    def _request_json(self, url: str) -> Dict[str, Any]:
        request = Request(url, headers={"Accept": "application/vnd.api+json"})
        with urlopen(request, timeout=self.timeout_seconds) as response:
            payload = response.read().decode("utf-8")
            return {"code": getattr(response, "status", 200), "data": json.loads(payload)}

    def _url(self, url: str, params: Optional[Dict[str, Any]] = None) -> str:
        if not params:
            return url
        return f"{url}?{urlencode(params)}"

    def fetch_data(
        self,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        all_data: bool = False,
    ) -> Dict[str, Any]:
        result: Dict[str, Any] = {"code": None, "data": None, "message": ""}
        try:
            response = self._request_json(self._url(url, params))
            body = response["data"]
            result["code"] = response["code"]
            result["data"] = body["data"]
            result["meta"] = body.get("meta")
            if body.get("included"):
                result["included"] = body["included"]

            if all_data:
                # Follow "next" links until exhausted or the limit is hit.
                iterations = 0
                while ((body.get("links") or {}).get("next") or {}).get("href") and iterations < ITERATION_LIMIT:
                    response = self._request_json(body["links"]["next"]["href"])
                    body = response["data"]
                    result["data"] = result["data"] + body["data"]
                    if body.get("included"):
                        result["included"] = (result.get("included") or []) + body["included"]
                    iterations += 1

                if iterations >= ITERATION_LIMIT:
                    result["message"] = (
                        "Max limit reached: Result data has been truncated to "
                        f"{len(result['data'])} records."
                    )
        except Exception as exc:
            error_code = exc.code if isinstance(exc, HTTPError) else 0
            logger.error(
                "Error code: %s. Message: %s. URL: %s", error_code, exc, url
            )
            reason = f"An error occurred while fetching data from {self.endpoint}"
            if 400 <= error_code < 500:
                if error_code == 403:
                    reason = (
                        "The request made to the catalog is likely invalid or might "
                        "have been blocked. Ensure you are running the latest version"
                    )
                else:
                    reason = (
                        "The request made to the catalog is likely invalid. Ensure "
                        "you are running the latest version"
                    )
            result["message"] = (
                f"{reason}. See the error log for details. While this error "
                f"persists, you can browse modules on {self.endpoint}/project/project_module."
            )
            result["code"] = error_code

        return result

    def _map_included(self, included: List[Dict[str, Any]]) -> Dict[str, Dict[str, Any]]:
        mapped: Dict[str, Dict[str, Any]] = {}
        for item in included:
            mapped.setdefault(item["type"], {})[item["id"]] = item.get("attributes") or {}
        return mapped

    def _vocabulary(self, vocabulary: str) -> List[Dict[str, str]]:
        params = {
            "sort": "name",
            "filter[status]": 1,
            f"fields[taxonomy_term--{vocabulary}]": "name",
        }
        result = self.fetch_data(
            f"{self.jsonapi_endpoint}/taxonomy_term/{vocabulary}", params, all_data=True
        )
        if result["code"] != 200 or not result["data"]:
            return []
        return [
            {"id": item["id"], "name": item["attributes"]["name"]}
            for item in result["data"]
        ]

    def get_categories(self) -> List[Dict[str, str]]:
        if self._categories is None:
            self._categories = self._vocabulary("module_categories")
        return self._categories

    def get_filter_definitions(self) -> Dict[str, Dict[str, Any]]:
        return {
            "categories": {
                "type": "multiple_choice",
                "name": "Categories",
                "choices": {c["id"]: c["name"] for c in self.get_categories()},
            },
            "security_advisory_coverage": {
                "type": "boolean",
                "name": "Security advisory coverage",
                "value": True,
            },
            "maintenance_status": {
                "type": "boolean",
                "name": "Maintenance status",
                "value": True,
            },
            "development_status": {
                "type": "boolean",
                "name": "Development status",
                "value": False,
            },
        }

    def get_sort_options(self) -> Dict[str, str]:
        return {"best_match": "Most relevant", "created": "Newest first"}

    def filter_values(self) -> Dict[str, Any]:
        now = self.time_source()
        if self._filter_values is not None and now < self._filter_values_expire:
            return self._filter_values

        url = self._url(
            f"{self.endpoint}/drupalorg-api/project-browser-filters",
            {"drupal_version": self.core_version},
        )
        try:
            values = self._request_json(url)["data"]
        except Exception as exc:
            logger.error("Unable to fetch filter values: %s", exc)
            return self._filter_values or {}
        self._filter_values = values if isinstance(values, dict) else {}
        self._filter_values_expire = now + FILTER_VALUES_TTL
        return self._filter_values

    def convert_query_options(self, query: Dict[str, Any]) -> Dict[str, Any]:
        query = dict(query)
        values = self.filter_values()

        sort = None
        if query.get("sort"):
            field, direction = SORT_FIELDS.get(query["sort"], (None, None))
            if direction in ("ASC", "DESC") and field:
                sort = ("-" if direction == "DESC" else "") + field
        query["sort"] = sort

        query["maintenance_status"] = (
            ",".join(values.get("maintained", [])) if query.get("maintenance_status") else None
        )
        query["development_status"] = (
            ",".join(values.get("active", [])) if query.get("development_status") else None
        )
        query["security_advisory_coverage"] = (
            ",".join(COVERED_VALUES) if query.get("security_advisory_coverage") else None
        )
        query["page"] = int(query.get("page") or 0)
        query["limit"] = int(query.get("limit") or 12)
        return query

    @staticmethod
    def add_multivalue_filter(
        field_name: str,
        values: Optional[str],
        params: Dict[str, Any],
        negate: bool = False,
    ) -> Dict[str, Any]:
        if not values:
            return params
        field = f"n_{field_name}" if negate else field_name
        for index, value in enumerate(values.split(",")):
            params[f"filter[{field}][value][{index}]"] = value.strip()
        params[f"filter[{field}][operator]"] = "NOT IN" if negate else "IN"
        params[f"filter[{field}][path]"] = field_name
        return params

    def add_core_version_check(self, params: Dict[str, Any]) -> Dict[str, Any]:
        version = numeric_semver(self.core_version)
        if not version:
            return params
        for field, operator in (("core_semver_minimum", "<="), ("core_semver_maximum", ">=")):
            params[f"filter[{field}][value]"] = version
            params[f"filter[{field}][operator]"] = operator
            params[f"filter[{field}][path]"] = field
        return params

    def fetch_projects(self, query: Dict[str, Any]) -> Dict[str, Any]:
        query = self.convert_query_options(query)
        params: Dict[str, Any] = {
            "filter[status]": 1,
            "filter[type]": "project_module",
            "filter[project_type]": "full",
            "page[limit]": query["limit"],
            "page[offset]": query["limit"] * query["page"],
            "include": "field_module_categories,field_maintenance_status,field_development_status,uid,field_project_images",
        }
        if query["sort"]:
            params["sort"] = query["sort"]
        if query.get("search"):
            params["filter[fulltext]"] = query["search"]
        if query.get("machine_name"):
            params["filter[machine_name]"] = query["machine_name"]

        params = self.add_core_version_check(params)
        params = self.add_multivalue_filter("module_categories_uuid", query.get("categories"), params)
        params = self.add_multivalue_filter("maintenance_status_uuid", query["maintenance_status"], params)
        params = self.add_multivalue_filter("development_status_uuid", query["development_status"], params)
        params = self.add_multivalue_filter("security_coverage", query["security_advisory_coverage"], params)
        params = self.add_multivalue_filter("security_coverage", REVOKED_STATUS, params, negate=True)

        result = self.fetch_data(f"{self.jsonapi_endpoint}/index/project_modules", params)
        response = {"code": result["code"], "total_results": 0, "list": []}
        if result["code"] == 200 and result["data"]:
            response["related"] = self._map_included(result.get("included") or [])
            response["total_results"] = (result.get("meta") or {}).get("count", len(result["data"]))
            response["list"] = result["data"]
        if result["code"] != 200:
            response["message"] = result["message"] or "Error when fetching the data."
        return response

    def absolute_body(self, body: Optional[Dict[str, str]]) -> Dict[str, str]:
        body = {key: value or "" for key, value in (body or {}).items() if key in ("summary", "value")}
        body.setdefault("summary", "")
        if not body.get("value"):
            body["value"] = body.get("summary") or ""
        body["value"] = _ROOT_RELATIVE.sub(
            lambda m: f"{m.group(1)}={m.group(2)}{self.endpoint}/", body["value"]
        )
        return body

    def _related_name(self, related: Dict[str, Dict[str, Any]], ref: Dict[str, Any]) -> str:
        return (related.get(ref["type"], {}).get(ref["id"]) or {}).get("name", "")

    def _to_project(
        self,
        item: Dict[str, Any],
        related: Dict[str, Dict[str, Any]],
        maintained_values: List[str],
    ) -> Project:
        attributes = item["attributes"]
        relationships = item.get("relationships") or {}
        machine_name = attributes["field_project_machine_name"]

        maintenance = (relationships.get("field_maintenance_status") or {}).get("data") or {}

        categories = [
            {"id": ref["id"], "name": self._related_name(related, ref)}
            for ref in (relationships.get("field_module_categories") or {}).get("data") or []
        ]

        images = []
        for ref in (relationships.get("field_project_images") or {}).get("data") or []:
            uri = (related.get(ref["type"], {}).get(ref["id"]) or {}).get("uri", {}).get("url", "")
            uri = f"{self.endpoint}{uri}".replace(f"{self.endpoint}/assets/", f"{self.endpoint}/files/")
            images.append({"file": uri, "alt": (ref.get("meta") or {}).get("alt", "")})

        usage_total = 0
        if attributes.get("field_active_installs"):
            usage = json.loads(attributes["field_active_installs"])
            usage_total = sum(int(value) for value in usage.values())

        current = numeric_semver(self.core_version)
        minimum = int(attributes.get("field_core_semver_minimum") or 0)
        maximum = int(attributes.get("field_core_semver_maximum") or 0)

        logo = (attributes.get("field_logo_url") or {}).get("uri")

        return Project(
            id=machine_name,
            machine_name=machine_name,
            title=attributes["title"],
            package_name=attributes.get("field_composer_namespace") or f"drupal/{machine_name}",
            is_compatible=minimum <= current <= maximum,
            is_maintained=maintenance.get("id") in maintained_values,
            is_covered=attributes.get("field_security_advisory_coverage") in COVERED_VALUES,
            project_usage_total=usage_total,
            categories=categories,
            images=images,
            logo=logo,
            body=self.absolute_body(attributes.get("body")),
            url=f"{self.endpoint}/project/{machine_name}",
        )

    def get_projects(self, query: Optional[Dict[str, Any]] = None) -> ProjectsResultsPage:
        values = self.filter_values()
        version_info = values.get("drupal_version") or {}
        if version_info and version_info.get("supported") is False:
            message = version_info.get("message") or (
                "The current version of Drupal is not supported in the catalog endpoint."
            )
            return self.create_results_page([], 0, message)

        response = self.fetch_projects(query or {})
        if response["code"] != 200:
            return self.create_results_page(
                [], 0, response.get("message") or "Error querying data."
            )

        related = response.get("related") or {}
        maintained = values.get("maintained") or []
        try:
            projects = [self._to_project(item, related, maintained) for item in response["list"]]
        except (KeyError, TypeError, ValueError) as exc:
            logger.error("Unable to read projects from %s: %r", self.endpoint, exc)
            return self.create_results_page(
                [], 0, f"The catalog at {self.endpoint} returned data that could not be read."
            )
        return self.create_results_page(projects, response["total_results"])
