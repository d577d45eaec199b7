#   Copyright 2026 UCP Authors
#
#   Licensed under the Apache License, Version 2.0 (the "License");
#   you may not use this file except in compliance with the License.
#   You may obtain a copy of the License at
#
#       http://www.apache.org/licenses/LICENSE-2.0
#
#   Unless required by applicable law or agreed to in writing, software
#   distributed under the License is distributed on an "AS IS" BASIS,
#   WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
#   See the License for the specific language governing permissions and
#   limitations under the License.

"""Projection of order totals into the protocol totals list.

Entries are emitted in a fixed order. Discounts are reported as negative
amounts and optional entries only appear when they are non-zero.
"""

from typing import List

from acp_merchant.domain import Order
from acp_merchant.enums import AdjustmentType
from acp_merchant.enums import ITEM_PROMOTION_TYPES
from acp_merchant.models import Total


def items_base_amount(order: Order) -> int:
  return sum(item.unit_price * item.quantity for item in order.items)


def items_discount(order: Order) -> int:
  """Absolute value of all item and unit level promotions."""
  return abs(
      sum(
          item.adjustments_total_recursively(ITEM_PROMOTION_TYPES)
          for item in order.items
      )
  )


def shipping_total(order: Order) -> int:
  """Shipping charges net of shipping promotions, never below zero."""
  charges = order.adjustments_total_recursively([AdjustmentType.SHIPPING])
  promotions = order.adjustments_total_recursively(
      [AdjustmentType.ORDER_SHIPPING_PROMOTION]
  )
  return max(0, charges + promotions)


def map_totals(order: Order) -> List[Total]:
  base = items_base_amount(order)
  item_discount = items_discount(order)
  order_discount = abs(
      order.order_adjustments_total([AdjustmentType.ORDER_PROMOTION])
  )
  shipping = shipping_total(order)
  tax = order.tax_total

  totals = [Total(type="items_base_amount", display_text="Items", amount=base)]
  if item_discount > 0:
    totals.append(
        Total(
            type="items_discount",
            display_text="Item Discounts",
            amount=-item_discount,
        )
    )
  totals.append(
      Total(type="subtotal", display_text="Subtotal", amount=base - item_discount)
  )
  if order_discount > 0:
    totals.append(
        Total(type="discount", display_text="Discount", amount=-order_discount)
    )
  if shipping > 0:
    totals.append(
        Total(type="fulfillment", display_text="Shipping", amount=shipping)
    )
  if tax > 0:
    totals.append(Total(type="tax", display_text="Tax", amount=tax))
  totals.append(Total(type="total", display_text="Total", amount=order.total))
  return totals
