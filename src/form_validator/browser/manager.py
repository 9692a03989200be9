"""
Playwrightブラウザのライフサイクル管理

ライブページを DocumentTreeProvider として扱うために、ブラウザの起動、
フォーム描画待ちを含むページオープン、終了処理だけを受け持つ。
"""
import logging
import os
from typing import List, Optional

from playwright.async_api import (
    async_playwright,
    Playwright,
    Browser,
    BrowserContext,
    Page,
    TimeoutError as PlaywrightTimeoutError,
)

logger = logging.getLogger(__name__)

# スナップショット前に待つフォーム要素（静的 markup 側の判定と揃える）
FORM_SELECTOR = "form, [data-node-type='Form']"

CI_ARGS = ["--no-sandbox", "--disable-setuid-sandbox", "--disable-dev-shm-usage"]


def _is_ci() -> bool:
    return os.getenv("GITHUB_ACTIONS") == "true" or os.getenv("CI") == "true"


class BrowserManager:
    """Chromium を1つ起動し、検証対象ページを開く"""

    def __init__(self, headless: Optional[bool] = None, page_load_timeout_ms: int = 30000, form_wait_ms: int = 5000):
        self.headless = headless
        self.page_load_timeout_ms = page_load_timeout_ms
        self.form_wait_ms = form_wait_ms

        self.playwright: Optional[Playwright] = None
        self.browser: Optional[Browser] = None
        self.context: Optional[BrowserContext] = None

    def _resolve_headless(self) -> bool:
        # PLAYWRIGHT_HEADLESS は --headless より優先
        env_headless = os.getenv('PLAYWRIGHT_HEADLESS', '').lower()
        if env_headless in ('1', 'true', 'yes'):
            return True
        if env_headless in ('0', 'false', 'no'):
            return False
        return True if self.headless is None else self.headless

    async def launch(self) -> bool:
        """起動に失敗した場合は後始末をして False を返す"""
        ci = _is_ci()
        args: List[str] = CI_ARGS if ci else []
        try:
            self.playwright = await async_playwright().start()
            use_headless = self._resolve_headless()
            logger.info(f"Launching Chromium ({'headless' if use_headless else 'GUI'} mode)")
            self.browser = await self.playwright.chromium.launch(
                headless=use_headless,
                args=args,
                timeout=60000 if ci else 30000,
            )
            return True
        except Exception as e:
            logger.error(f"Browser launch failed: {e}")
            await self.close()
            return False

    async def open_page(self, url: str) -> Page:
        """
        URL を開き、フォーム要素が DOM に現れるまで待つ

        フォームが見つからなくてもページは返す（スキャン結果が空になるだけ）。

        Raises:
            ConnectionError: launch() 前に呼ばれた場合
        """
        if not self.browser:
            raise ConnectionError("Browser is not launched. Call launch() first.")
        if not self.context:
            self.context = await self.browser.new_context()
        page = await self.context.new_page()
        await page.goto(url, timeout=self.page_load_timeout_ms, wait_until="domcontentloaded")
        try:
            await page.wait_for_selector(FORM_SELECTOR, state="attached", timeout=self.form_wait_ms)
        except PlaywrightTimeoutError:
            logger.warning(f"No form appeared within {self.form_wait_ms}ms: {url}")
        logger.info(f"Page ready: {url}")
        return page

    async def close(self):
        """context → browser → playwright の順に閉じる（個別の失敗は警告のみ）"""
        steps = (
            ("context", lambda obj: obj.close()),
            ("browser", lambda obj: obj.close()),
            ("playwright", lambda obj: obj.stop()),
        )
        for attr, closer in steps:
            obj = getattr(self, attr)
            if obj is None:
                continue
            try:
                await closer(obj)
            except Exception as e:
                logger.warning(f"{attr} was already closed: {e}")
            finally:
                setattr(self, attr, None)
