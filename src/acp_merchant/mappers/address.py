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

"""Mapping between postal addresses and the protocol address schema."""

import logging
from typing import Any, Dict, Optional

from acp_merchant.domain import Address
from acp_merchant.models import WireAddress
from acp_merchant.ports import ProvinceLookup

logger = logging.getLogger(__name__)


def _string(data: Dict[str, Any], key: str) -> Optional[str]:
  value = data.get(key)
  return value if isinstance(value, str) else None


def encode(address: Optional[Address]) -> Optional[WireAddress]:
  """Projects a postal address into the protocol address schema."""
  if address is None:
    return None

  wire = WireAddress(state=address.province_code or "")
  name = f"{address.first_name or ''} {address.last_name or ''}".strip()
  if name:
    wire.name = name
  if address.street:
    line_one, _, line_two = address.street.partition("\n")
    wire.line_one = line_one
    if line_two:
      wire.line_two = line_two
  if address.city:
    wire.city = address.city
  if address.country_code:
    wire.country = address.country_code.upper()
  if address.postcode:
    wire.postal_code = address.postcode
  return wire


def decode(
    data: Dict[str, Any], address: Address, provinces: ProvinceLookup
) -> Address:
  """Writes the present members of a protocol address onto `address`.

  Absent or non-string members leave the matching field untouched. The
  state is only kept when a province with that code exists in the decoded
  country.

  Args:
    data: The protocol address object.
    address: The postal address to update.
    provinces: Lookup of known province codes.

  Returns:
    The updated address.
  """
  name = _string(data, "name")
  if name is not None:
    first_name, _, last_name = name.partition(" ")
    address.first_name = first_name
    address.last_name = last_name

  line_one = _string(data, "line_one")
  if line_one is not None:
    address.street = line_one

  # Appended to whatever street is already set, even without line_one.
  line_two = _string(data, "line_two")
  if line_two:
    address.street = f"{address.street or ''}\n{line_two}"

  city = _string(data, "city")
  if city is not None:
    address.city = city

  postal_code = _string(data, "postal_code")
  if postal_code is not None:
    address.postcode = postal_code

  country = _string(data, "country")
  if country is not None:
    address.country_code = country.upper()

  state = _string(data, "state")
  if state and country:
    if provinces.exists(country.upper(), state):
      address.province_code = state
    else:
      logger.debug("Dropping unknown province %r for %s", state, country)
  return address
