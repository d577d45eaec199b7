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

"""Enumerations for the checkout server.

This module defines the protocol-visible session status together with the
internal order, checkout, payment and payment-request states the status is
derived from.
"""

import enum


class CheckoutSessionStatus(str, enum.Enum):
  NOT_READY_FOR_PAYMENT = "not_ready_for_payment"
  READY_FOR_PAYMENT = "ready_for_payment"
  IN_PROGRESS = "in_progress"
  COMPLETED = "completed"
  CANCELED = "canceled"


TERMINAL_STATUSES = (
    CheckoutSessionStatus.COMPLETED,
    CheckoutSessionStatus.CANCELED,
)


class OrderState(str, enum.Enum):
  CART = "cart"
  # An order placed by the customer.
  NEW = "new"
  CANCELLED = "cancelled"
  FULFILLED = "fulfilled"


class CheckoutState(str, enum.Enum):
  CART = "cart"
  ADDRESSED = "addressed"
  SHIPPING_SELECTED = "shipping_selected"
  SHIPPING_SKIPPED = "shipping_skipped"
  PAYMENT_SELECTED = "payment_selected"
  PAYMENT_SKIPPED = "payment_skipped"
  COMPLETED = "completed"


class OrderPaymentState(str, enum.Enum):
  CART = "cart"
  AWAITING_PAYMENT = "awaiting_payment"
  PAID = "paid"


class PaymentState(str, enum.Enum):
  CART = "cart"
  NEW = "new"
  PROCESSING = "processing"
  COMPLETED = "completed"
  FAILED = "failed"
  CANCELLED = "cancelled"


class PaymentRequestState(str, enum.Enum):
  NEW = "new"
  PROCESSING = "processing"
  COMPLETED = "completed"
  FAILED = "failed"
  CANCELLED = "cancelled"


class AdjustmentType(str, enum.Enum):
  ORDER_ITEM_PROMOTION = "order_item_promotion"
  ORDER_UNIT_PROMOTION = "order_unit_promotion"
  ORDER_PROMOTION = "order_promotion"
  ORDER_SHIPPING_PROMOTION = "order_shipping_promotion"
  SHIPPING = "shipping"
  TAX = "tax"


ITEM_PROMOTION_TYPES = (
    AdjustmentType.ORDER_ITEM_PROMOTION,
    AdjustmentType.ORDER_UNIT_PROMOTION,
)
