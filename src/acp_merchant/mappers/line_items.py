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

"""Projection of order items into protocol line items."""

from typing import List

from acp_merchant.domain import Order
from acp_merchant.domain import OrderItem
from acp_merchant.enums import AdjustmentType
from acp_merchant.enums import ITEM_PROMOTION_TYPES
from acp_merchant.models import ItemReference
from acp_merchant.models import LineItem


def variant_code(item: OrderItem) -> str:
  if item.variant_code:
    return item.variant_code
  if item.variant_id is not None:
    return f"variant_{item.variant_id}"
  return "unknown"


def map_item(item: OrderItem) -> LineItem:
  base_amount = item.unit_price * item.quantity
  # Promotion adjustments are negative, so is the discount.
  discount = item.adjustments_total_recursively(ITEM_PROMOTION_TYPES)
  return LineItem(
      id=f"line_item_{item.id}",
      item=ItemReference(id=variant_code(item), quantity=item.quantity),
      base_amount=base_amount,
      discount=discount,
      subtotal=base_amount + discount,
      tax=item.adjustments_total_recursively([AdjustmentType.TAX]),
      total=item.total,
  )


def map_line_items(order: Order) -> List[LineItem]:
  return [map_item(item) for item in order.items]
