"""
Launchpad Registry

The Launchpad ties the trading components together. It owns the shared state
store, the wrapped-native funds ledger and one ledger per launched token, the
pair factory and the router, and it keeps a registry of launches.

Responsibilities:
- Create launches from validated LaunchConfigModel instances, filling unset
  parameters from the platform defaults
- Load launch configurations from JSON files and save new ones back
- Let the superadmin change the launch defaults and hand over the role
- Handle graduation events: create the token/funds pool in the factory and
  record it on the launch (seeding its liquidity is left to an orchestrator)
"""
import json
import time
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple, Union

from pydantic import ValidationError as PydanticValidationError

from mcp_launchpad import config
from mcp_launchpad.errors import (
    AlreadyInitialized,
    InvalidDeadline,
    InvalidFee,
    InvalidThreshold,
    LaunchNotFound,
    LaunchpadError,
    Unauthorized,
    ValidationError,
)
from mcp_launchpad.factory import PairFactory
from mcp_launchpad.ledger import Address, InMemoryLedger, Ledger
from mcp_launchpad.market import BondingMarket, GraduationEvent
from mcp_launchpad.router import Router
from mcp_launchpad.schemas import LaunchConfigModel, LaunchpadState, LaunchRecord, MarketState
from mcp_launchpad.storage import InMemoryStore, StateStore, atomic, load
from mcp.server.fastmcp.utilities.logging import get_logger

logger = get_logger(__name__)

# Determine the absolute path to the directory containing this file
MODULE_DIR = Path(__file__).parent.resolve()

LAUNCHPAD_KEY = "launchpad"


def _launch_key(launch_id: str) -> str:
    return f"launch:{launch_id}"


class Launchpad:
    def __init__(
        self,
        store: Optional[StateStore] = None,
        funds: Optional[Ledger] = None,
        clock: Callable[[], float] = time.time,
        config_dir: Union[str, Path, None] = None,
        platform_wallet: Address = config.PLATFORM_WALLET,
        superadmin: Address = config.SUPERADMIN,
    ):
        self.store = store if store is not None else InMemoryStore()
        self.funds = funds if funds is not None else InMemoryLedger(config.FUNDS_TOKEN, "WCSPR", "Wrapped CSPR", 9)
        self.ledgers: Dict[Address, Ledger] = {self.funds.address: self.funds}
        self.platform_wallet = platform_wallet
        self._clock = clock
        self._markets: Dict[str, BondingMarket] = {}

        if config_dir is None:
            self.config_dir = None
        else:
            # Relative directories resolve against the package, like the default
            config_dir = Path(config_dir)
            self.config_dir = config_dir if config_dir.is_absolute() else MODULE_DIR / config_dir

        if LAUNCHPAD_KEY not in self.store:
            self.store.put(
                LAUNCHPAD_KEY,
                LaunchpadState(
                    superadmin=superadmin,
                    default_graduation_threshold=config.DEFAULT_GRADUATION_THRESHOLD,
                    default_platform_fee_bps=config.DEFAULT_PLATFORM_FEE_BPS,
                    default_deadline_days=config.DEFAULT_DEADLINE_DAYS,
                ),
            )
        self.factory = PairFactory(self.store, self.ledgers, fee_to_setter=superadmin)
        self.router = Router(self.factory, self.store, self.ledgers, clock=clock)

    def participants(self):
        """Everything a top-level operation may mutate, for atomic()."""
        return (self.store, *self.ledgers.values())

    # --- Defaults / administration ---

    @property
    def state(self) -> LaunchpadState:
        return load(self.store, LAUNCHPAD_KEY, LaunchpadState)

    def get_defaults(self) -> Tuple[int, int, int]:
        """Returns (graduation_threshold, platform_fee_bps, deadline_days)."""
        state = self.state
        return state.default_graduation_threshold, state.default_platform_fee_bps, state.default_deadline_days

    def _require_superadmin(self, caller: Address) -> LaunchpadState:
        state = self.state
        if caller != state.superadmin:
            raise Unauthorized(f"{caller} is not the launchpad superadmin")
        return state

    def update_defaults(
        self,
        caller: Address,
        graduation_threshold: Optional[int] = None,
        platform_fee_bps: Optional[int] = None,
        deadline_days: Optional[int] = None,
    ) -> None:
        """Changes the defaults applied to future launches (superadmin only)."""
        state = self._require_superadmin(caller)
        if graduation_threshold is not None:
            if graduation_threshold <= 0:
                raise InvalidThreshold("Graduation threshold must be positive")
            state.default_graduation_threshold = graduation_threshold
        if platform_fee_bps is not None:
            if platform_fee_bps < 0 or platform_fee_bps > config.MAX_PLATFORM_FEE_BPS:
                raise InvalidFee(f"Platform fee must be between 0 and {config.MAX_PLATFORM_FEE_BPS} bps")
            state.default_platform_fee_bps = platform_fee_bps
        if deadline_days is not None:
            if deadline_days <= 0:
                raise InvalidDeadline("Deadline must be at least one day")
            state.default_deadline_days = deadline_days
        self.store.put(LAUNCHPAD_KEY, state)
        logger.info(
            f"Launch defaults updated: threshold={state.default_graduation_threshold}, "
            f"platform_fee_bps={state.default_platform_fee_bps}, deadline_days={state.default_deadline_days}"
        )

    def transfer_superadmin(self, caller: Address, new_admin: Address) -> None:
        state = self._require_superadmin(caller)
        state.superadmin = new_admin
        self.store.put(LAUNCHPAD_KEY, state)
        logger.info(f"Superadmin role transferred from {caller} to {new_admin}")

    # --- Launches ---

    def create_launch(self, launch_config: LaunchConfigModel, creator: Optional[Address] = None) -> LaunchRecord:
        """
        Creates the token ledger and bonding market for a new launch.

        Args:
            launch_config: Validated launch configuration.
            creator: Launch creator; falls back to ``launch.creator`` in the config
                and then to the superadmin.

        Returns:
            The registry record of the new launch.

        Raises:
            AlreadyInitialized: If the launch id is taken.
            ValidationError: If the resolved parameters are inconsistent.
            InsufficientBalance: If the creator cannot fund the promo budget.
        """
        launch = launch_config.launch
        token_config = launch_config.token
        launch_id = launch.launch_id
        if _launch_key(launch_id) in self.store:
            raise AlreadyInitialized(f"Launch '{launch_id}' already exists")

        state = self.state
        creator = creator or launch.creator or state.superadmin
        now = int(self._clock())
        deadline_days = launch.deadline_days or state.default_deadline_days
        token_address = f"token-{launch_id}"
        market_address = f"market-{launch_id}"

        try:
            market_state = MarketState(
                token=token_address,
                creator=creator,
                platform_wallet=self.platform_wallet,
                funds_token=self.funds.address,
                curve_type=launch.curve_type,
                total_supply=launch.total_supply or config.DEFAULT_TOTAL_SUPPLY,
                base_price=launch.base_price if launch.base_price is not None else config.DEFAULT_BASE_PRICE,
                max_price=launch.max_price if launch.max_price is not None else config.DEFAULT_MAX_PRICE,
                platform_fee_bps=(
                    launch.platform_fee_bps
                    if launch.platform_fee_bps is not None
                    else state.default_platform_fee_bps
                ),
                creator_fee_bps=launch.creator_fee_bps,
                graduation_threshold=launch.graduation_threshold or state.default_graduation_threshold,
                deadline=now + deadline_days * config.SECONDS_PER_DAY,
                promo_budget=launch.promo_budget,
            )
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid parameters for launch '{launch_id}': {e}") from e

        token = InMemoryLedger(
            token_address,
            token_config.symbol,
            name=token_config.name,
            decimals=token_config.decimals,
            minters={market_address},
        )
        record = LaunchRecord(
            launch_id=launch_id,
            token=token_address,
            market=market_address,
            creator=creator,
            symbol=token_config.symbol,
            created_at=now,
        )
        self.ledgers[token_address] = token
        try:
            with atomic(self.store, self.funds):
                market = BondingMarket.create(
                    market_address, self.store, token, self.funds, market_state, clock=self._clock
                )
                if launch.promo_budget:
                    self.funds.transfer(creator, market_address, launch.promo_budget)
                self.store.put(_launch_key(launch_id), record)
                state = self.state
                state.launches.append(launch_id)
                self.store.put(LAUNCHPAD_KEY, state)
        except LaunchpadError:
            del self.ledgers[token_address]
            raise
        market.add_listener(self._on_graduation)
        self._markets[launch_id] = market
        logger.info(f"Launch '{launch_id}' created: {token_config.symbol} by {creator}, market {market_address}")
        return record

    def get_launch(self, launch_id: str) -> LaunchRecord:
        record = load(self.store, _launch_key(launch_id), LaunchRecord)
        if record is None:
            raise LaunchNotFound(f"Launch '{launch_id}' not found")
        return record

    def get_launch_by_token(self, token: Address) -> Optional[LaunchRecord]:
        for launch_id in self.state.launches:
            record = self.get_launch(launch_id)
            if record.token == token:
                return record
        return None

    def get_launches(self, offset: int = 0, limit: int = 20) -> List[LaunchRecord]:
        launch_ids = self.state.launches[offset:offset + limit]
        return [self.get_launch(launch_id) for launch_id in launch_ids]

    def launch_count(self) -> int:
        return len(self.state.launches)

    def market(self, launch_id: str) -> BondingMarket:
        market = self._markets.get(launch_id)
        if market is None:
            raise LaunchNotFound(f"Launch '{launch_id}' not found")
        return market

    def token(self, launch_id: str) -> Ledger:
        return self.ledgers[self.get_launch(launch_id).token]

    def _on_graduation(self, event: GraduationEvent) -> None:
        record = next(
            (r for r in map(self.get_launch, self.state.launches) if r.market == event.market),
            None,
        )
        if record is None:
            raise LaunchNotFound(f"No launch owns market {event.market}")

        pair = self.factory.get_pair(event.token, event.funds_token)
        if pair is None:
            pair = self.factory.create_pair(event.token, event.funds_token).address
        record.pair = pair
        self.store.put(_launch_key(record.launch_id), record)
        logger.info(
            f"Launch '{record.launch_id}' graduated with {event.funds_raised} raised; "
            f"pool {pair} awaits liquidity"
        )

    # --- Config files ---

    def load_launch_configs(self) -> List[LaunchRecord]:
        """
        Creates launches for every valid ``*.json`` config in the config directory.

        Files whose launch id does not match their file name, duplicates and
        launches that already exist are skipped with a warning; unreadable or
        invalid files are logged and skipped.

        Returns:
            The records of the launches created.
        """
        created: List[LaunchRecord] = []
        if self.config_dir is None:
            return created
        if not self.config_dir.is_dir():
            logger.warning(f"Launch configuration directory not found: {self.config_dir}. No launches loaded.")
            return created

        logger.info(f"Loading launch configurations from: {self.config_dir}")
        seen = set()
        for file_path in sorted(self.config_dir.glob("*.json")):
            try:
                with open(file_path, "r") as f:
                    launch_config = LaunchConfigModel.model_validate(json.load(f))
            except json.JSONDecodeError:
                logger.error(f"Error decoding JSON from file: {file_path}")
                continue
            except PydanticValidationError as e:
                logger.error(f"Invalid launch configuration in file {file_path}: {e}")
                continue

            launch_id = launch_config.launch.launch_id
            if launch_id != file_path.stem:
                logger.warning(
                    f"Launch ID mismatch in {file_path}: expected '{file_path.stem}', found '{launch_id}'. Skipping."
                )
                continue
            if launch_id in seen or _launch_key(launch_id) in self.store:
                logger.warning(f"Duplicate launch ID '{launch_id}' found in {file_path}. Skipping.")
                continue
            seen.add(launch_id)

            try:
                created.append(self.create_launch(launch_config))
            except (LaunchpadError, ValidationError) as e:
                logger.error(f"Could not create launch from {file_path}: {e}")

        logger.info(f"Finished loading launches. Total loaded: {len(created)}")
        return created

    def save_launch_config(self, launch_config: LaunchConfigModel) -> bool:
        """Writes a launch configuration to ``<config_dir>/<launch_id>.json``."""
        if self.config_dir is None:
            return False
        file_path = self.config_dir / f"{launch_config.launch.launch_id}.json"
        try:
            self.config_dir.mkdir(parents=True, exist_ok=True)
            with open(file_path, "w") as f:
                json.dump(launch_config.model_dump(mode="json", exclude_none=True), f, indent=4)
        except OSError as e:
            logger.error(f"Error saving launch configuration to {file_path}: {e}")
            return False
        logger.info(f"Successfully saved launch configuration to {file_path}")
        return True
