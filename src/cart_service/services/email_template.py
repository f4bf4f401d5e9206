"""Recovery e-mail rendering."""

from html import escape

from cart_service.domain import CartRecord, ShopSettings, round_money

_ITEM_ROW = """
      <tr>
        <td style="padding: 12px; border-bottom: 1px solid #f0f0f0;">
          {title}{variant}
        </td>
        <td style="padding: 12px; border-bottom: 1px solid #f0f0f0; text-align:center;">x{quantity}</td>
        <td style="padding: 12px; border-bottom: 1px solid #f0f0f0; text-align:right; font-weight:600;">
          {price} {currency}
        </td>
      </tr>"""

_BODY = """
    <div style="font-family: 'Helvetica Neue', Arial, sans-serif; max-width: 600px; margin: 0 auto; background: #fff;">
      <div style="background: linear-gradient(135deg, #1a1a2e 0%, #16213e 100%); padding: 40px 30px; text-align: center;">
        <h1 style="color: #fff; margin: 0; font-size: 28px; font-weight: 300; letter-spacing: 2px;">
          Ξεχάσατε κάτι; 🛒
        </h1>
        <p style="color: rgba(255,255,255,0.7); margin: 10px 0 0; font-size: 15px;">
          Το καλάθι σας σας περιμένει!
        </p>
      </div>
      <div style="padding: 40px 30px;">
        <p style="color: #333; font-size: 16px; line-height: 1.6;">
          Γεια σας! Παρατηρήσαμε ότι αφήσατε κάποια προϊόντα στο καλάθι σας.
        </p>
        <table style="width: 100%; border-collapse: collapse; margin: 25px 0; background: #fafafa;">
          <thead>
            <tr style="background: #f0f0f0;">
              <th style="padding: 12px; text-align:left; font-size:13px; color:#666;">ΠΡΟΪΟΝ</th>
              <th style="padding: 12px; text-align:center; font-size:13px; color:#666;">ΠΟΣ.</th>
              <th style="padding: 12px; text-align:right; font-size:13px; color:#666;">ΤΙΜΗ</th>
            </tr>
          </thead>
          <tbody>{rows}
          </tbody>
          <tfoot>
            <tr>
              <td colspan="2" style="padding: 15px 12px; font-weight: 700;">Σύνολο</td>
              <td style="padding: 15px 12px; text-align:right; font-weight: 700; font-size: 18px;">
                {total} {currency}
              </td>
            </tr>
          </tfoot>
        </table>
        <div style="text-align: center; margin: 35px 0;">
          <a href="{checkout_url}"
             style="background: #667eea; color: white; padding: 16px 45px; border-radius: 50px;
                    text-decoration: none; font-size: 16px; font-weight: 600; display: inline-block;">
            Ολοκλήρωση Παραγγελίας →
          </a>
        </div>
      </div>
      <div style="background: #f8f8f8; padding: 20px 30px; text-align: center; border-top: 1px solid #eee;">
        <p style="color: #aaa; font-size: 12px; margin: 0;">{shop}</p>
      </div>
    </div>
"""


def checkout_url(shop: str) -> str:
    return f"https://{shop}/checkout"


def render_recovery_email(shop: str, cart: CartRecord, settings: ShopSettings) -> str:
    """Render the HTML body, preferring the shop's own body when configured."""
    if settings.email_body:
        return settings.email_body

    currency = escape(cart.currency)
    rows = "".join(
        _ITEM_ROW.format(
            title=escape(item.title or "Προϊόν"),
            variant=(
                f'<br><small style="color:#888">{escape(item.variant_title)}</small>'
                if item.variant_title
                else ""
            ),
            quantity=item.quantity or 1,
            price=round_money(item.price),
            currency=currency,
        )
        for item in cart.line_items
    )
    return _BODY.format(
        rows=rows,
        total=round_money(cart.total_price),
        currency=currency,
        checkout_url=escape(checkout_url(shop), quote=True),
        shop=escape(shop),
    )
