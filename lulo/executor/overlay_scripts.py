"""JavaScript injected into controlled pages.

`OVERLAY_JS` installs `window.__lulo`, a small API the Python side drives
with `page.evaluate`: glow border + status badge, click ring, toast,
element highlight, guide bubble and preview panel. Installation is
idempotent and survives being evaluated again after a navigation.
"""
from typing import Any, Optional

from playwright.async_api import Page, Locator, Error as PlaywrightError

from lulo.utils.logger import setup_logger
from lulo.utils.config import config

OVERLAY_JS = r"""
(() => {
  if (window.__lulo) return true;
  const ACCENT = '217, 119, 87';
  const GUIDE = '139, 109, 184';
  const Z = 2147483600;

  const style = document.createElement('style');
  style.id = '__lulo_style';
  style.textContent = `
    @keyframes luloPulse { 0%, 100% { opacity: 0.8; } 50% { opacity: 1; } }
    @keyframes luloBlink { 0%, 100% { opacity: 1; } 50% { opacity: 0.3; } }
    @keyframes luloRing { from { transform: scale(0.4); opacity: 1; } to { transform: scale(1.6); opacity: 0; } }
    @keyframes luloSlideIn { from { transform: translateX(100%); opacity: 0; } to { transform: translateX(0); opacity: 1; } }
    @keyframes luloGuidePulse {
      0% { box-shadow: 0 0 0 0 rgba(${GUIDE}, 0.7); }
      70% { box-shadow: 0 0 0 10px rgba(${GUIDE}, 0); }
      100% { box-shadow: 0 0 0 0 rgba(${GUIDE}, 0); }
    }
  `;

  const host = () => document.body || document.documentElement;
  const ensureStyle = () => {
    if (!document.getElementById('__lulo_style')) {
      (document.head || document.documentElement).appendChild(style);
    }
  };
  const make = (id, css) => {
    let el = id ? document.getElementById(id) : null;
    if (!el) {
      el = document.createElement('div');
      if (id) el.id = id;
      host().appendChild(el);
    }
    el.style.cssText = css;
    return el;
  };

  let statusText = '';

  window.__lulo = {
    glow(on, text) {
      ensureStyle();
      if (!on) {
        document.getElementById('__lulo_glow')?.remove();
        document.getElementById('__lulo_badge')?.remove();
        return true;
      }
      make('__lulo_glow', `
        position: fixed; inset: 10px; pointer-events: none; z-index: ${Z};
        border: 3px solid rgba(${ACCENT}, 0.8); border-radius: 12px;
        box-shadow: 0 0 20px rgba(${ACCENT}, 0.4), 0 0 40px rgba(${ACCENT}, 0.2),
                    inset 0 0 20px rgba(${ACCENT}, 0.1);
        animation: luloPulse 2s ease-in-out infinite;
      `);
      const badge = make('__lulo_badge', `
        position: fixed; top: 20px; left: 20px; z-index: ${Z + 1}; pointer-events: none;
        background: rgba(${ACCENT}, 0.95); color: white; padding: 8px 16px;
        border-radius: 20px; font: 600 12px -apple-system, BlinkMacSystemFont, sans-serif;
        display: flex; align-items: center; gap: 8px; box-shadow: 0 2px 10px rgba(0,0,0,0.2);
      `);
      if (text) statusText = text;
      badge.innerHTML = '';
      const dot = document.createElement('div');
      dot.style.cssText = 'width: 8px; height: 8px; background: white; border-radius: 50%; animation: luloBlink 1s ease-in-out infinite;';
      badge.appendChild(dot);
      badge.appendChild(document.createTextNode(statusText));
      return true;
    },

    status(text) {
      statusText = text;
      const badge = document.getElementById('__lulo_badge');
      if (badge && badge.lastChild) badge.lastChild.textContent = text;
      return true;
    },

    ring(x, y, lifetimeMs) {
      ensureStyle();
      const ring = make(null, `
        position: fixed; left: ${x - 15}px; top: ${y - 15}px; width: 30px; height: 30px;
        border: 2px solid rgba(${ACCENT}, 0.9); border-radius: 50%;
        pointer-events: none; z-index: ${Z + 2};
        animation: luloRing ${lifetimeMs}ms ease-out forwards;
      `);
      setTimeout(() => ring.remove(), lifetimeMs);
      return true;
    },

    toast(message, kind) {
      ensureStyle();
      const toast = make(null, `
        position: fixed; top: 20px; right: 20px; padding: 12px 20px; z-index: ${Z + 3};
        background: ${kind === 'error' ? '#ef4444' : `rgb(${ACCENT})`}; color: white;
        border-radius: 8px; font: 14px -apple-system, BlinkMacSystemFont, 'Segoe UI', sans-serif;
        box-shadow: 0 4px 12px rgba(0,0,0,0.15); animation: luloSlideIn 0.3s ease;
      `);
      toast.textContent = message;
      setTimeout(() => toast.remove(), 3000);
      return true;
    },

    highlight(el, lifetimeMs) {
      if (!el || !el.getBoundingClientRect) return false;
      const r = el.getBoundingClientRect();
      const box = make(null, `
        position: absolute; left: ${r.left + window.scrollX}px; top: ${r.top + window.scrollY}px;
        width: ${r.width}px; height: ${r.height}px; border: 2px solid rgb(${GUIDE});
        box-shadow: 0 0 10px rgb(${GUIDE}), 0 0 20px rgba(${GUIDE}, 0.4);
        background: rgba(${GUIDE}, 0.1); border-radius: 4px; pointer-events: none;
        z-index: ${Z - 1}; transition: all 0.3s ease;
      `);
      setTimeout(() => box.remove(), lifetimeMs);
      return true;
    },

    guide(el, message, lifetimeMs) {
      ensureStyle();
      this.hideGuide();
      const bubble = document.createElement('div');
      bubble.textContent = message || '';
      bubble.style.cssText = `
        background: #1e1e1e; color: #fff; padding: 8px 12px; border-radius: 6px;
        font: 13px sans-serif; white-space: nowrap; border: 1px solid #333;
        box-shadow: 0 4px 12px rgba(0,0,0,0.2);
      `;
      let overlay;
      if (el && el.getBoundingClientRect) {
        el.scrollIntoView({ behavior: 'smooth', block: 'center' });
        const r = el.getBoundingClientRect();
        overlay = make('__lulo_guide', `
          position: absolute; left: ${r.left + window.scrollX}px; top: ${r.top + window.scrollY}px;
          width: ${r.width}px; height: ${r.height}px; border: 2px solid rgb(${GUIDE});
          background: rgba(${GUIDE}, 0.1); border-radius: 4px; pointer-events: none;
          z-index: ${Z - 1}; animation: luloGuidePulse 2s infinite;
        `);
        bubble.style.position = 'absolute';
        bubble.style.bottom = '100%';
        bubble.style.left = '50%';
        bubble.style.transform = 'translateX(-50%)';
        bubble.style.marginBottom = '10px';
        const onClick = (e) => {
          const b = el.getBoundingClientRect();
          if (e.clientX >= b.left && e.clientX <= b.right && e.clientY >= b.top && e.clientY <= b.bottom) {
            overlay.remove();
            document.removeEventListener('click', onClick);
          }
        };
        setTimeout(() => document.addEventListener('click', onClick), 500);
      } else {
        overlay = make('__lulo_guide', `
          position: fixed; bottom: 30px; left: 50%; transform: translateX(-50%);
          pointer-events: none; z-index: ${Z + 3};
        `);
      }
      overlay.appendChild(bubble);
      setTimeout(() => overlay.remove(), lifetimeMs);
      return true;
    },

    hideGuide() {
      document.getElementById('__lulo_guide')?.remove();
      return true;
    },

    preview(html, css, js) {
      document.getElementById('__lulo_preview')?.remove();
      const panel = make('__lulo_preview', `
        position: fixed; top: 5vh; left: 5vw; width: 90vw; height: 90vh; z-index: ${Z + 4};
        background: white; border-radius: 12px; overflow: hidden;
        box-shadow: 0 20px 60px rgba(0,0,0,0.35); display: flex; flex-direction: column;
      `);
      const bar = document.createElement('div');
      bar.style.cssText = `display: flex; justify-content: space-between; align-items: center;
        padding: 8px 14px; background: rgb(${ACCENT}); color: white; font: 600 13px sans-serif;`;
      bar.textContent = 'Lulo Preview';
      const close = document.createElement('button');
      close.textContent = '×';
      close.style.cssText = 'background: none; border: none; color: white; font-size: 20px; cursor: pointer;';
      close.onclick = () => panel.remove();
      bar.appendChild(close);
      const frame = document.createElement('iframe');
      frame.style.cssText = 'flex: 1; border: none; width: 100%;';
      frame.setAttribute('sandbox', 'allow-scripts');
      frame.srcdoc = `<!DOCTYPE html><html><head><style>${css || ''}</style></head>` +
        `<body>${html || ''}<script>${js || ''}<\/script></body></html>`;
      panel.appendChild(bar);
      panel.appendChild(frame);
      return true;
    },
  };
  return true;
})()
"""

# el => ElementInfo fields
ELEMENT_INFO_JS = """
(el) => ({
  tag: el.tagName.toLowerCase(),
  id: el.id || null,
  classes: typeof el.className === 'string' ? el.className.split(/\\s+/).filter(Boolean) : [],
  ariaLabel: el.getAttribute('aria-label'),
  text: (el.innerText || el.textContent || '').slice(0, 100),
  placeholder: el.getAttribute('placeholder'),
})
"""

# Setting .value alone is invisible to React/Angular/Vue; they listen for events.
SET_VALUE_JS = """
(el, value) => {
  el.focus();
  el.value = value;
  el.dispatchEvent(new Event('input', { bubbles: true }));
  el.dispatchEvent(new Event('change', { bubbles: true }));
  return true;
}
"""

HIGHLIGHT_JS = "(el, ms) => window.__lulo && window.__lulo.highlight(el, ms)"
GUIDE_JS = "(el, args) => window.__lulo.guide(el, args[0], args[1])"
GLOW_JS = "(args) => window.__lulo.glow(args[0], args[1])"
STATUS_JS = "(text) => window.__lulo.status(text)"
RING_JS = "(args) => window.__lulo.ring(args[0], args[1], args[2])"
TOAST_JS = "(args) => window.__lulo.toast(args[0], args[1])"
GUIDE_MESSAGE_JS = "(args) => window.__lulo.guide(null, args[0], args[1])"
HIDE_GUIDE_JS = "() => window.__lulo.hideGuide()"
PREVIEW_JS = "(args) => window.__lulo.preview(args[0], args[1], args[2])"

PAGE_INFO_JS = """
(limit) => ({
  url: window.location.href,
  title: document.title,
  h1: document.querySelector('h1')?.innerText || '',
  description: document.querySelector('meta[name="description"]')?.content || '',
  text: (document.body ? document.body.innerText : '').slice(0, limit).replace(/\\s+/g, ' '),
})
"""

READY_STATE_JS = "() => document.readyState"

EXTRACT_JS = r"""
([sel, fmt]) => {
  if (sel === 'body' || sel.includes('email')) {
    const text = document.body ? document.body.innerText : '';
    const emails = [...new Set(text.match(/[\w.-]+@[\w.-]+\.\w+/g) || [])];
    return fmt === 'csv' ? emails.join('\n') : JSON.stringify(emails);
  }
  if (sel === 'img' || sel === 'images' || sel.includes('img')) {
    const imgs = Array.from(document.querySelectorAll('img'))
      .map(img => img.src)
      .filter(src => src && src.startsWith('http'))
      .slice(0, 10);
    return fmt === 'csv' ? imgs.join('\n') : JSON.stringify(imgs);
  }
  if (sel === 'brand') {
    const colors = Array.from(document.querySelectorAll('button, a.btn, header, nav'))
      .map(el => { const s = getComputedStyle(el); return [s.backgroundColor, s.color]; })
      .flat()
      .filter(c => c !== 'rgba(0, 0, 0, 0)' && c !== 'rgb(255, 255, 255)')
      .slice(0, 5);
    return JSON.stringify({
      title: document.title,
      description: document.querySelector('meta[name="description"]')?.content || '',
      logo: document.querySelector('link[rel*="icon"]')?.href || '',
      colors,
      font: getComputedStyle(document.body).fontFamily.split(',')[0].replace(/['"]/g, ''),
    });
  }
  const texts = Array.from(document.querySelectorAll(sel))
    .map(el => (el.innerText || '').trim())
    .filter(Boolean);
  return fmt === 'csv' ? texts.join('\n') : JSON.stringify(texts);
}
"""

SCROLL_CENTER_JS = "(el) => el.scrollIntoView({ behavior: 'smooth', block: 'center' })"
NATIVE_CLICK_JS = "(el) => el.click()"
READ_TEXT_JS = "(el) => el.innerText || el.textContent || ''"


class PageOverlay:
    """
    Best-effort access to `window.__lulo` on one page.

    Every call installs the overlay first (cheap when already present) and
    reports delivery as a bool; a page that navigated away or closed is
    logged at debug level and never raises.
    """

    def __init__(self, page: Page):
        self.page = page
        self.logger = setup_logger("PageOverlay")
        self._persistent = False

    async def persist(self, extra_js: str = ""):
        """Re-install the overlay on every document the page loads from now on."""
        if self._persistent:
            return
        await self.page.add_init_script(script=OVERLAY_JS + ";\n" + extra_js)
        self._persistent = True

    async def call(self, script: str, arg: Any = None) -> bool:
        try:
            await self.page.evaluate(OVERLAY_JS)
            await self.page.evaluate(script, arg)
            return True
        except PlaywrightError as e:
            self.logger.debug(f"Overlay call dropped: {e}")
            return False

    async def call_on(self, element: Locator, script: str, arg: Any = None) -> bool:
        try:
            await self.page.evaluate(OVERLAY_JS)
            await element.evaluate(script, arg)
            return True
        except PlaywrightError as e:
            self.logger.debug(f"Overlay call dropped: {e}")
            return False

    async def glow(self, on: bool, text: str = "") -> bool:
        return await self.call(GLOW_JS, [on, text])

    async def status(self, text: str) -> bool:
        return await self.call(STATUS_JS, text)

    async def ring(self, x: float, y: float, lifetime_ms: Optional[int] = None) -> bool:
        return await self.call(RING_JS, [x, y, lifetime_ms or config.ring_lifetime_ms])

    async def toast(self, message: str, kind: str = "success") -> bool:
        return await self.call(TOAST_JS, [message, kind])

    async def highlight(self, element: Locator, lifetime_ms: int = 2000) -> bool:
        return await self.call_on(element, HIGHLIGHT_JS, lifetime_ms)

    async def guide(self, message: str, element: Optional[Locator] = None) -> bool:
        if element is None:
            return await self.call(GUIDE_MESSAGE_JS, [message, config.guide_lifetime_ms])
        return await self.call_on(element, GUIDE_JS, [message, config.guide_lifetime_ms])

    async def hide_guide(self) -> bool:
        return await self.call(HIDE_GUIDE_JS)

    async def preview(self, html: str, css: str = "", js: str = "") -> bool:
        return await self.call(PREVIEW_JS, [html, css, js])
