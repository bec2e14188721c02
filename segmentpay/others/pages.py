from html import escape
from typing import Any, List, Optional

from x402.paywall import get_paywall_html
from x402.types import PaywallConfig

from .config import Settings

STATUS_POLL_MS = 2000
POPUP_CLOSE_MS = 1500

_STYLE = """
    body { font-family: system-ui; background: #1a1a2e; color: white; margin: 0; padding: 20px; }
    .container { max-width: 500px; margin: 0 auto; text-align: center; }
    h1 { font-size: 1.5rem; }
    .price { font-size: 2rem; color: #4ade80; margin: 1rem 0; }
    .frame-container { background: white; border-radius: 12px; overflow: hidden; margin: 1rem 0; }
    iframe { width: 100%; height: 550px; border: none; }
    .success { font-size: 3rem; margin: 2rem 0; }
    a { color: #60a5fa; }
    .back { margin-top: 1rem; }
"""


def build_paywall_config(settings: Settings) -> PaywallConfig:
    return PaywallConfig(
        cdp_client_key=settings.cdp_client_key or "",
        app_name="segmentpay",
        app_logo="/static/x402.png",
    )


def _display_price(price: str) -> str:
    return f"{price} USDC" if price.startswith("$") else price


def render_pay_page(segment_id: str, price: str) -> str:
    """
    Guided payment page for one segment.

    The iframe loads the protected segment URL itself: the browser gets the
    x402 paywall there, and the paywall's retry with X-PAYMENT is the request
    that settles the payment. Meanwhile this page polls the status endpoint
    and moves on to the confirmation page once the segment shows up as paid.
    """
    sid = escape(segment_id)
    return f"""<!DOCTYPE html>
<html>
<head>
  <title>Pay for Segment {sid}</title>
  <style>{_STYLE}</style>
</head>
<body>
  <div class="container">
    <h1>Payment Required</h1>
    <p>Segment #{sid}</p>
    <div class="price">{escape(_display_price(price))}</div>
    <div class="frame-container">
      <iframe id="payframe" src="/unit/{sid}"></iframe>
    </div>
    <p class="back"><a href="/">Back to player</a></p>
  </div>
  <script>
    const checkInterval = setInterval(async () => {{
      try {{
        const res = await fetch('/status/{sid}', {{ credentials: 'same-origin' }});
        const data = await res.json();
        if (data.isPaid) {{
          clearInterval(checkInterval);
          window.location.href = '/confirm/{sid}';
        }}
      }} catch (e) {{}}
    }}, {STATUS_POLL_MS});
  </script>
</body>
</html>
"""


def render_confirm_page(segment_id: str) -> str:
    sid = escape(segment_id)
    return f"""<!DOCTYPE html>
<html>
<head>
  <title>Payment Successful</title>
  <style>{_STYLE}</style>
</head>
<body>
  <div class="container">
    <div class="success">Payment Successful!</div>
    <p>Segment #{sid} is now unlocked</p>
    <p><a href="/">Return to Video Player</a></p>
  </div>
  <script>
    if (window.opener) {{
      window.opener.postMessage({{ type: 'payment-success', segmentId: '{sid}' }}, '*');
      setTimeout(() => window.close(), {POPUP_CLOSE_MS});
    }}
  </script>
</body>
</html>
"""


def render_paywall(
    error: str,
    requirements: List[Any],
    paywall_config: Optional[PaywallConfig] = None,
) -> str:
    return get_paywall_html(error, requirements, paywall_config)
