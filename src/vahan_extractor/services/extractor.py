"""Vehicle detail extraction from the Vahan portal."""

from dataclasses import dataclass, field
from typing import Callable, Optional, Protocol

import structlog
from playwright.async_api import Error as PlaywrightError, Locator, Page

from vahan_extractor.core.config import HOME_URL, ExtractionConfig
from vahan_extractor.models.vehicle import SectionStatus, VehicleResult

logger = structlog.get_logger()

LogSink = Callable[[str], None]

REPORT_MENU_TEXTS = ["Report", "REPORT"]
REGISTERED_VEH_DETAILS_TEXTS = ["Registered Vehicle Details", "REGISTERED VEHICLE DETAILS"]
SHOW_DETAILS_TEXTS = ["Show Details", "SHOW DETAILS"]
REG_INPUT_XPATH = (
    "xpath=//label[contains(normalize-space(.),'Vehicle Registration No')]/following::input[1]"
)


@dataclass(frozen=True)
class TabTarget:
    """How to find and verify one details tab."""

    names: list[str]
    checks: list[str]
    index_hint: int
    required: bool = False


VEHICLE_TAB = TabTarget(
    names=["Vehicle Details", "VEHICLE DETAILS", "Vehicle"],
    checks=[
        "xpath=//legend[contains(normalize-space(.),'Vehicle Information')]",
        "xpath=//label[contains(normalize-space(.),'Maker')]",
    ],
    index_hint=2,
    required=True,
)
SLD_TAB = TabTarget(
    names=["SLD Details", "Speed Limiting Device", "Speed Governor", "SLD"],
    checks=[
        "xpath=//legend[contains(normalize-space(.),'Speed Governor Details')]",
        "xpath=//label[contains(normalize-space(.),'Speed Governor Number')]",
        "xpath=//th[contains(normalize-space(.),'SLD UIN')]",
    ],
    index_hint=5,
)
PERMIT_TAB = TabTarget(
    names=["Permit Details", "PERMIT DETAILS", "Permit"],
    checks=[
        "xpath=//label[contains(normalize-space(.),'Permit Category')]",
        "xpath=//label[contains(normalize-space(.),'Permit Type')]",
    ],
    index_hint=8,
)

# (label variants, result attribute)
VEHICLE_FIELDS = [
    (["Maker", "Manufacturer", "Make"], "maker"),
    (["Maker Model", "Model"], "maker_model"),
    (["Vehicle Type", "Type"], "vehicle_type"),
    (["Vehicle Class", "Class"], "vehicle_class"),
    (["Vehicle Category", "Category"], "vehicle_category"),
    (["Seating Capacity"], "seating_capacity"),
    (["Unladen Weight (Kg.)", "Unladen Weight"], "unladen_weight"),
    (["Laden Weight (Kg.)", "Laden Weight"], "laden_weight"),
]
SLD_FIELDS = [
    (["Speed Governor Number"], "speed_governor_number"),
    (["Speed Governor Manufacturer Name", "Manufacturer Name"], "speed_governor_manufacturer"),
    (["Speed Governor Type", "SLD TYPE", "SLD Type", "Type"], "speed_governor_type"),
    (["Speed Governor Type Approval No", "Type Approval No"], "speed_governor_approval_no"),
    (["Speed Governor Test Report No", "Test Report No"], "speed_governor_test_report_no"),
    (["Speed Governor Fitment Cert No", "Fitment Cert No"], "speed_governor_fitment_cert_no"),
]
PERMIT_FIELDS = [
    (["Permit Type"], "permit_type"),
    (["Permit Category"], "permit_category"),
    (["Service Type"], "service_type"),
    (["Office"], "office"),
]
SLD_TYPE_HEADERS = ["SLD TYPE", "Speed Governor Type", "Type"]


class ExtractionError(RuntimeError):
    """The portal could not be navigated to a vehicle's details."""


class ItemExtractor(Protocol):
    """Reads one vehicle's details through a live browser page."""

    async def extract(
        self, page: Page, vehicle_number: str, log: Optional[LogSink] = None
    ) -> VehicleResult:
        ...


@dataclass
class VahanExtractor:
    """Playwright extractor for the Vahan "Registered Vehicle Details" report.

    Missing fields are left empty. Structural failures (search form or details
    page unreachable) raise ExtractionError so the caller can retry.
    """

    config: ExtractionConfig = field(default_factory=ExtractionConfig)
    home_url: str = HOME_URL

    @property
    def _timeout_ms(self) -> int:
        return self.config.operation_timeout * 1000

    async def extract(
        self, page: Page, vehicle_number: str, log: Optional[LogSink] = None
    ) -> VehicleResult:
        log = log or (lambda message: logger.debug("extractor", message=message))
        log(f"Processing {vehicle_number} ...")

        try:
            await self._search(page, vehicle_number)
        except PlaywrightError as e:
            raise ExtractionError(f"Could not open details for {vehicle_number}: {e}") from e

        result = VehicleResult(vehicle_number=vehicle_number)

        vehicle_ok = await self._click_tab(page, VEHICLE_TAB)
        if not vehicle_ok:
            await self._swallow(page.evaluate("() => window.scrollTo(0, 0)"))
            vehicle_ok = await self._click_tab(page, VEHICLE_TAB)
        if not vehicle_ok:
            raise ExtractionError(f"Vehicle Details tab unreachable for {vehicle_number}")
        await self._read_fields(page, VEHICLE_FIELDS, result)

        if await self._click_tab(page, SLD_TAB):
            result.sld_status = SectionStatus.PRESENT
            await self._read_fields(page, SLD_FIELDS, result)
            if not result.speed_governor_type:
                result.speed_governor_type = (
                    await self._read_table_header(page, SLD_TYPE_HEADERS) or None
                )

        if await self._click_tab(page, PERMIT_TAB):
            result.permit_status = SectionStatus.PRESENT
            await self._read_fields(page, PERMIT_FIELDS, result)

        result.success = True
        return result

    async def _search(self, page: Page, vehicle_number: str) -> None:
        await self._open_registered_vehicle_details(page)
        await self._ensure_search_form(page)

        reg_input = page.locator(REG_INPUT_XPATH).first
        await reg_input.fill("")
        await page.wait_for_timeout(100)
        await reg_input.fill(vehicle_number)
        await page.wait_for_timeout(200)

        if not await self._click_first(
            page,
            [
                lambda t: page.get_by_role("button", name=t),
                lambda t: page.get_by_text(t, exact=False).first,
            ],
            SHOW_DETAILS_TEXTS,
            timeout=2000,
        ):
            raise ExtractionError("Show Details button not found")

        try:
            await page.get_by_role("heading", name="Registered Vehicle Details").wait_for(
                timeout=self._timeout_ms
            )
        except PlaywrightError:
            await page.locator(
                "h1.header-main:has-text('Registered Vehicle Details')"
            ).first.wait_for(timeout=self._timeout_ms)
        await page.locator(".ui-tabs-nav").first.wait_for(timeout=self._timeout_ms)

    async def _open_registered_vehicle_details(self, page: Page) -> None:
        await self._ensure_page_ready(page)
        await page.wait_for_timeout(300)

        # The report link only appears while the menu is hovered
        for _ in range(3):
            if await self._hover_report_menu(page):
                break
            await page.wait_for_timeout(500)
        await page.wait_for_timeout(300)

        if not await self._click_first(
            page,
            [
                lambda t: page.get_by_role("link", name=t).first,
                lambda t: page.get_by_text(t, exact=False).first,
            ],
            REGISTERED_VEH_DETAILS_TEXTS,
            timeout=self._timeout_ms,
        ):
            raise ExtractionError("Registered Vehicle Details menu entry not found")

    async def _ensure_page_ready(self, page: Page) -> None:
        try:
            if "vahan.parivahan.gov.in" not in page.url or "login" in page.url:
                await page.goto(self.home_url, wait_until="domcontentloaded", timeout=15_000)
                await page.wait_for_timeout(1000)
            await page.wait_for_load_state("domcontentloaded", timeout=10_000)
            for _ in range(5):
                if await page.get_by_text("Report", exact=False).count() > 0:
                    return
                await page.wait_for_timeout(500)
        except PlaywrightError as e:
            logger.debug("page_not_ready", error=str(e))

    async def _hover_report_menu(self, page: Page) -> bool:
        for text in REPORT_MENU_TEXTS:
            for locator in (
                page.get_by_text(text, exact=False).first,
                page.get_by_role("link", name=text),
            ):
                try:
                    await locator.hover(timeout=2000)
                    return True
                except PlaywrightError:
                    continue
        return False

    async def _ensure_search_form(self, page: Page) -> None:
        for _ in range(10):
            try:
                reg_input = page.locator(REG_INPUT_XPATH).first
                await reg_input.wait_for(timeout=1200)
                await reg_input.click(timeout=600)
                return
            except PlaywrightError:
                pass
            try:
                await page.get_by_role("textbox").first.click(timeout=800)
                return
            except PlaywrightError:
                pass
            await page.wait_for_timeout(250)

        await self._open_registered_vehicle_details(page)
        await page.wait_for_timeout(250)

    async def _click_first(self, page: Page, getters, texts: list[str], timeout: int) -> bool:
        """Click the first element found by any getter for any text, then fall back to a DOM click."""
        for text in texts:
            for getter in getters:
                try:
                    await getter(text).click(timeout=timeout)
                    return True
                except PlaywrightError:
                    continue

        try:
            return bool(
                await page.evaluate(
                    """(txts) => {
                        const el = [...document.querySelectorAll('a,button,span,div,input[type=button]')]
                          .find(n => txts.some(t => (n.textContent || '').trim() === t));
                        if (el) { el.click(); return true; }
                        return false;
                    }""",
                    texts,
                )
            )
        except PlaywrightError:
            return False

    def _tab_locators(self, page: Page, name: str) -> list[Locator]:
        return [
            page.get_by_role("tab", name=name).first,
            page.get_by_role("link", name=name).first,
            page.get_by_text(name, exact=False).first,
            page.locator(
                "xpath=//*[contains(@class,'ui-tabs-nav')]"
                f"//*[self::a or self::span or self::div][normalize-space(text())='{name}']"
            ).first,
        ]

    async def _tab_available(self, page: Page, tab: TabTarget) -> bool:
        try:
            if await page.locator(".ui-tabs-nav").count() == 0:
                return False
            for name in tab.names:
                for locator in self._tab_locators(page, name):
                    if await locator.count() > 0:
                        return True
        except PlaywrightError:
            return False
        return False

    async def _tab_opened(self, page: Page, tab: TabTarget, timeout: int) -> bool:
        for selector in tab.checks:
            try:
                await page.locator(selector).first.wait_for(timeout=timeout)
                return True
            except PlaywrightError:
                continue
        return False

    async def _click_tab(self, page: Page, tab: TabTarget, timeout: int = 9000) -> bool:
        """Open a details tab. Optional tabs that are absent return False quickly."""
        if not await self._tab_available(page, tab) and not tab.required:
            return False

        await self._swallow(
            page.evaluate(
                "() => document.querySelector('.ui-tabs-nav')?.scrollIntoView({block: 'center'})"
            )
        )

        for _ in range(2):
            for name in tab.names:
                for locator in self._tab_locators(page, name):
                    try:
                        if await locator.count() == 0:
                            continue
                        await locator.scroll_into_view_if_needed(timeout=1200)
                        await locator.click(timeout=1500, force=True)
                    except PlaywrightError:
                        continue
                    if await self._tab_opened(page, tab, timeout):
                        return True

        if not tab.required:
            return False

        # Fall back to clicking tab headers by position
        try:
            items = page.locator(".ui-tabs-nav li a, .ui-tabs-nav li span, .ui-tabs-nav li div")
            count = await items.count()
        except PlaywrightError:
            return False
        if count == 0:
            return False

        idx = min(tab.index_hint, count - 1)
        for i in (idx, min(idx + 1, count - 1), max(0, idx - 1)):
            try:
                await items.nth(i).click(timeout=1200, force=True)
            except PlaywrightError:
                continue
            if await self._tab_opened(page, tab, timeout):
                return True
        return False

    async def _read_fields(self, page: Page, fields, result: VehicleResult) -> None:
        for labels, attribute in fields:
            value = await self._read_label(page, labels)
            if value:
                setattr(result, attribute, value)

    async def _read_value(self, element: Locator) -> str:
        """Read the displayed value of an input, select, PrimeFaces widget or text node."""
        try:
            tag = await element.evaluate("el => el.tagName.toLowerCase()")
            if tag in ("input", "textarea"):
                return (await element.input_value()).strip()
            if tag == "select":
                return (
                    await element.evaluate(
                        """el => {
                            const i = el.selectedIndex;
                            return i >= 0 ? (el.options[i].textContent || '') : (el.value || '');
                        }"""
                    )
                ).strip()

            menu_label = element.locator(".ui-selectonemenu-label").first
            if await menu_label.count() > 0:
                text = ((await menu_label.text_content()) or "").strip()
                if text and text.upper() != "CHOOSE":
                    return text

            nested = element.locator("input, textarea, select").first
            if await nested.count() > 0:
                return await self._read_value(nested)

            return ((await element.text_content()) or "").strip()
        except PlaywrightError:
            return ""

    async def _read_label(self, page: Page, label_variants: list[str]) -> str:
        """Find a field value by its label: for= target, same row, then the next input."""
        for label in label_variants:
            try:
                label_el = page.locator(
                    f"xpath=//label[contains(normalize-space(.),'{label}')]"
                ).first
                await label_el.wait_for(timeout=1000)
                for_id = await label_el.get_attribute("for")
                if for_id:
                    target = page.locator(f"#{for_id}").first
                    if await target.count() > 0:
                        value = await self._read_value(target)
                        if value:
                            return value
            except PlaywrightError:
                continue

        for label in label_variants:
            try:
                label_el = page.locator(
                    f"xpath=//label[contains(normalize-space(.),'{label}')]"
                ).first
                await label_el.wait_for(timeout=1000)
                container = label_el.locator(
                    "xpath=ancestor::tr[1] | ancestor::div[contains(@class,'row') "
                    "or contains(@class,'ui-grid')][1]"
                ).first
                for selector in (
                    ".ui-selectonemenu-label",
                    "input, select, textarea",
                    "span.ui-inputfield, span.ui-outputlabel, div.readonly-value, span.readonly-value",
                ):
                    candidate = container.locator(selector).first
                    if await candidate.count() > 0:
                        value = await self._read_value(candidate)
                        if value:
                            return value
            except PlaywrightError:
                continue

        for label in label_variants:
            for xpath in (
                f"xpath=//label[contains(normalize-space(.),'{label}')]/following::*"
                "[self::span[contains(@class,'ui-selectonemenu-label')] or self::input "
                "or self::select or self::textarea][1]",
                f"xpath=//label[contains(normalize-space(.),'{label}')]/following::span[1]",
            ):
                try:
                    locator = page.locator(xpath).first
                    await locator.wait_for(timeout=800)
                    value = await self._read_value(locator)
                    if value:
                        return value
                except PlaywrightError:
                    continue

        return ""

    async def _read_table_header(self, page: Page, header_variants: list[str]) -> str:
        for header in header_variants:
            try:
                cell = page.locator(
                    f"xpath=//th[contains(normalize-space(.),'{header}')]/following-sibling::td[1]"
                    f" | //td[contains(@headers,'{header}')][1]"
                ).first
                await cell.wait_for(timeout=800)
                value = ((await cell.text_content()) or "").strip()
                if value:
                    return value
            except PlaywrightError:
                continue
        return ""

    @staticmethod
    async def _swallow(awaitable) -> None:
        try:
            await awaitable
        except PlaywrightError:
            pass

