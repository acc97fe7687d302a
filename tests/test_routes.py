"""
Tests for route selection — pure, total, case-insensitive.

Test plan:
- Deposits: all four routes, both ETH sentinels and the L2 base-token
  alias, base comparison ignores case
- Withdrawals: sentinels and alias → base, anything else → erc20-nonbase
- Interop: ERC-20 action or differing bases → indirect, else direct
- Action sums: native value counts sendNative + call.value only
- Properties: selectors are deterministic and case-insensitive for
  arbitrary addresses
"""

from hypothesis import given
from hypothesis import strategies as st

from zkflow.constants import ETH_ADDRESS, FORMAL_ETH_ADDRESS, L2_BASE_TOKEN_ADDRESS
from zkflow.routes import (
    Call,
    DepositRoute,
    InteropRoute,
    SendErc20,
    SendNative,
    WithdrawRoute,
    addr_eq,
    pick_deposit_route,
    pick_interop_route,
    pick_withdraw_route,
    sum_action_msg_value,
    sum_erc20_amounts,
)

TOKEN = "0xAbCdEf0123456789aBcDeF0123456789AbCdEf01"
BASE = "0x4444444444444444444444444444444444444444"
OTHER_BASE = "0x5555555555555555555555555555555555555555"
TO = "0x2222222222222222222222222222222222222222"

addresses = st.binary(min_size=20, max_size=20).map(lambda b: "0x" + b.hex())


def mixed_case(addr: str) -> str:
    return "0x" + "".join(c.upper() if i % 2 else c for i, c in enumerate(addr[2:]))


# ---------------------------------------------------------------------------
# Deposits
# ---------------------------------------------------------------------------


class TestDepositRoutes:
    def test_eth_into_eth_based_chain(self) -> None:
        assert pick_deposit_route(ETH_ADDRESS, FORMAL_ETH_ADDRESS) is DepositRoute.ETH_BASE
        assert pick_deposit_route(FORMAL_ETH_ADDRESS, ETH_ADDRESS) is DepositRoute.ETH_BASE

    def test_eth_into_custom_base_chain(self) -> None:
        assert pick_deposit_route(ETH_ADDRESS, BASE) is DepositRoute.ETH_NONBASE

    def test_l2_base_alias_counts_as_eth(self) -> None:
        assert pick_deposit_route(L2_BASE_TOKEN_ADDRESS, ETH_ADDRESS) is DepositRoute.ETH_BASE

    def test_base_token(self) -> None:
        assert pick_deposit_route(TOKEN, TOKEN.lower()) is DepositRoute.ERC20_BASE

    def test_non_base_token(self) -> None:
        assert pick_deposit_route(TOKEN, BASE) is DepositRoute.ERC20_NONBASE
        assert pick_deposit_route(TOKEN, ETH_ADDRESS) is DepositRoute.ERC20_NONBASE

    def test_route_values(self) -> None:
        assert [str(r) for r in DepositRoute] == [
            "eth-base", "eth-nonbase", "erc20-base", "erc20-nonbase",
        ]


# ---------------------------------------------------------------------------
# Withdrawals
# ---------------------------------------------------------------------------


class TestWithdrawRoutes:
    def test_sentinels_and_alias(self) -> None:
        for token in (ETH_ADDRESS, FORMAL_ETH_ADDRESS, L2_BASE_TOKEN_ADDRESS.upper()):
            assert pick_withdraw_route(token) is WithdrawRoute.BASE

    def test_erc20(self) -> None:
        assert pick_withdraw_route(TOKEN) is WithdrawRoute.ERC20_NONBASE


# ---------------------------------------------------------------------------
# Interop
# ---------------------------------------------------------------------------


class TestInteropRoutes:
    def test_native_same_base_is_direct(self) -> None:
        actions = (SendNative(to=TO, amount=1), Call(to=TO, data="0x1234"))
        assert pick_interop_route(actions, BASE, BASE.upper()) is InteropRoute.DIRECT

    def test_erc20_forces_indirect(self) -> None:
        actions = (SendErc20(token=TOKEN, to=TO, amount=5),)
        assert pick_interop_route(actions, BASE, BASE) is InteropRoute.INDIRECT

    def test_differing_bases_force_indirect(self) -> None:
        actions = (SendNative(to=TO, amount=1),)
        assert pick_interop_route(actions, BASE, OTHER_BASE) is InteropRoute.INDIRECT

    def test_empty_actions_same_base_is_direct(self) -> None:
        assert pick_interop_route((), BASE, BASE) is InteropRoute.DIRECT

    def test_action_sums(self) -> None:
        actions = (
            SendNative(to=TO, amount=3),
            Call(to=TO, value=4),
            Call(to=TO),
            SendErc20(token=TOKEN, to=TO, amount=100),
        )
        assert sum_action_msg_value(actions) == 7
        assert sum_erc20_amounts(actions) == 100


# ---------------------------------------------------------------------------
# Properties
# ---------------------------------------------------------------------------


class TestRouteProperties:
    @given(token=addresses, base=addresses)
    def test_deposit_route_case_insensitive(self, token: str, base: str) -> None:
        expected = pick_deposit_route(token, base)
        assert pick_deposit_route(mixed_case(token), base.upper().replace("0X", "0x")) is expected
        assert pick_deposit_route(token, base) is expected

    @given(token=addresses)
    def test_withdraw_route_case_insensitive(self, token: str) -> None:
        assert pick_withdraw_route(mixed_case(token)) is pick_withdraw_route(token)

    @given(token=addresses, src=addresses, dst=addresses, amount=st.integers(min_value=0))
    def test_interop_route_total(self, token: str, src: str, dst: str, amount: int) -> None:
        erc20 = (SendErc20(token=token, to=TO, amount=amount),)
        native = (SendNative(to=TO, amount=amount),)
        assert pick_interop_route(erc20, src, dst) is InteropRoute.INDIRECT
        expected = InteropRoute.DIRECT if addr_eq(src, dst) else InteropRoute.INDIRECT
        assert pick_interop_route(native, src, mixed_case(dst)) is expected

    @given(a=addresses)
    def test_addr_eq_reflexive_across_case(self, a: str) -> None:
        assert addr_eq(a, mixed_case(a))
        assert not addr_eq(a, None)
