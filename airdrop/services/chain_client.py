"""Steem RPC and proxy-chain clients for fetching snapshot inputs."""

import threading
import time
from collections.abc import Callable, Sequence
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, TypeVar

import httpx
import structlog

from airdrop.services.errors import (
    ChainClientError,
    ChainConnectionError,
    IngestionError,
    MalformedRecordError,
    ProxyLookupError,
    RPCError,
)
from airdrop.services.schemas.chain import (
    AccountRecord,
    GlobalStakeParameters,
    ProxyChainLookup,
    ProxyChainRecord,
)
from config import get_settings

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

T = TypeVar("T")


def _retry_call(
    func: Callable[[], T],
    retry_attempts: int,
    retry_delay: float,
    description: str,
) -> T:
    last_error: Exception | None = None
    for attempt in range(retry_attempts):
        try:
            return func()
        except (httpx.HTTPError, ValueError) as e:
            last_error = e
            logger.warning(
                "Request failed, retrying",
                call=description,
                attempt=attempt + 1,
                error=str(e)[:100],
            )
            if attempt < retry_attempts - 1:
                time.sleep(retry_delay * (attempt + 1))
    if isinstance(last_error, httpx.ConnectError):
        raise ChainConnectionError(f"Cannot reach endpoint for {description}: {last_error}")
    raise RPCError(f"{description} failed after {retry_attempts} attempts: {last_error}")


class RateLimiter:
    """Sliding-window limiter shared by concurrent lookups."""

    def __init__(self, calls: int, period: float) -> None:
        self.calls: int = calls
        self.period: float = period
        self._timestamps: list[float] = []
        self._lock: threading.Lock = threading.Lock()

    def wait(self) -> None:
        if self.calls <= 0 or self.period <= 0:
            return
        with self._lock:
            now: float = time.monotonic()
            self._timestamps = [ts for ts in self._timestamps if now - ts < self.period]
            if len(self._timestamps) >= self.calls:
                sleep_time: float = self._timestamps[0] + self.period - now
                if sleep_time > 0:
                    logger.debug("Rate limit: sleeping", seconds=round(sleep_time, 2))
                    time.sleep(sleep_time)
            self._timestamps.append(time.monotonic())


class SteemClient:
    """JSON-RPC client for a Steem API node."""

    def __init__(
        self,
        rpc_url: str | None = None,
        timeout: float | None = None,
        retry_attempts: int | None = None,
        retry_delay: float | None = None,
        account_batch_size: int | None = None,
        votes_page_limit: int | None = None,
        request_delay: float | None = None,
        http_client: httpx.Client | None = None,
    ) -> None:
        settings = get_settings().steem
        self.rpc_url: str = rpc_url or settings.rpc_url
        self.timeout: float = timeout or settings.rpc_timeout
        self.retry_attempts: int = retry_attempts or settings.retry_attempts
        self.retry_delay: float = settings.retry_delay if retry_delay is None else retry_delay
        self.account_batch_size: int = account_batch_size or settings.account_batch_size
        self.votes_page_limit: int = votes_page_limit or settings.votes_page_limit
        self.request_delay: float = (
            settings.request_delay if request_delay is None else request_delay
        )
        self._http: httpx.Client = http_client or httpx.Client(timeout=self.timeout)
        self._request_id: int = 0

    def close(self) -> None:
        self._http.close()

    def __enter__(self) -> "SteemClient":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def call(self, method: str, params: list[Any]) -> Any:
        """Invoke ``condenser_api.<method>`` and return its ``result``."""
        self._request_id += 1
        payload: dict[str, Any] = {
            "jsonrpc": "2.0",
            "method": f"condenser_api.{method}",
            "params": params,
            "id": self._request_id,
        }

        def _post() -> dict[str, Any]:
            response: httpx.Response = self._http.post(self.rpc_url, json=payload)
            response.raise_for_status()
            body: object = response.json()
            if not isinstance(body, dict):
                raise ValueError(f"Unexpected JSON-RPC body: {str(body)[:100]}")
            return body

        body: dict[str, Any] = _retry_call(
            _post, self.retry_attempts, self.retry_delay, method
        )
        if body.get("error"):
            error: object = body["error"]
            message: object = error.get("message") if isinstance(error, dict) else error
            raise RPCError(f"{method} returned error: {message}")
        if "result" not in body:
            raise RPCError(f"{method} returned no result")
        return body["result"]

    def get_global_parameters(self) -> GlobalStakeParameters:
        raw: object = self.call("get_dynamic_global_properties", [])
        if not isinstance(raw, dict):
            raise RPCError("get_dynamic_global_properties returned a non-object result")
        params: GlobalStakeParameters = GlobalStakeParameters.from_rpc(raw)
        logger.info(
            "Fetched global stake parameters",
            total_vesting_fund=str(params.total_vesting_fund_liquid),
            total_vesting_shares=str(params.total_vesting_shares),
        )
        return params

    @staticmethod
    def _vote_proposal_id(vote: dict[str, Any]) -> object:
        proposal: object = vote.get("proposal")
        if isinstance(proposal, dict):
            return proposal.get("id", proposal.get("proposal_id"))
        return vote.get("proposal_id")

    def get_proposal_voters(self, proposal_id: int) -> list[str]:
        """All accounts with a vote on ``proposal_id``, in ascending voter order."""
        voters: list[str] = []
        seen: set[str] = set()
        start: str = ""
        while True:
            page: object = self.call(
                "list_proposal_votes",
                [
                    [proposal_id, start],
                    self.votes_page_limit,
                    "by_proposal_voter",
                    "ascending",
                    "all",
                ],
            )
            if not isinstance(page, list):
                raise RPCError("list_proposal_votes returned a non-list result")

            rows: list[dict[str, Any]] = [v for v in page if isinstance(v, dict)]
            if start and rows and rows[0].get("voter") == start:
                rows = rows[1:]
            matching: list[dict[str, Any]] = [
                v for v in rows if self._vote_proposal_id(v) == proposal_id
            ]
            for vote in matching:
                voter: object = vote.get("voter")
                if not isinstance(voter, str) or not voter:
                    raise MalformedRecordError(f"Proposal vote without voter: {vote}")
                if voter not in seen:
                    seen.add(voter)
                    voters.append(voter)

            if not rows or len(page) < self.votes_page_limit or len(matching) < len(rows):
                break
            start = str(rows[-1].get("voter"))
            time.sleep(self.request_delay)

        logger.info("Fetched proposal voters", proposal_id=proposal_id, voters=len(voters))
        return voters

    def get_accounts(self, names: Sequence[str]) -> list[AccountRecord]:
        """Look up accounts in batches; unknown names are skipped."""
        results: list[AccountRecord] = []
        batch_size: int = self.account_batch_size
        for i in range(0, len(names), batch_size):
            batch: list[str] = list(names[i : i + batch_size])
            logger.debug(
                "Fetching account batch",
                batch=i // batch_size + 1,
                size=len(batch),
            )
            rows: object = self.call("get_accounts", [batch])
            if not isinstance(rows, list):
                raise RPCError("get_accounts returned a non-list result")
            results.extend(AccountRecord.from_rpc(row) for row in rows if isinstance(row, dict))
            if i + batch_size < len(names):
                time.sleep(self.request_delay)
        return results


class ProxyChainClient:
    """Client for the steemworld backwards proxy-chain lookup."""

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        retry_attempts: int | None = None,
        retry_delay: float | None = None,
        workers: int | None = None,
        rate_limit_calls: int | None = None,
        rate_limit_period: float | None = None,
        http_client: httpx.Client | None = None,
    ) -> None:
        settings = get_settings().steem
        self.base_url: str = (base_url or settings.proxy_chain_url).rstrip("/")
        self.timeout: float = timeout or settings.rpc_timeout
        self.retry_attempts: int = retry_attempts or settings.retry_attempts
        self.retry_delay: float = settings.retry_delay if retry_delay is None else retry_delay
        self.workers: int = workers or settings.proxy_workers
        self.rate_limiter: RateLimiter = RateLimiter(
            settings.proxy_rate_limit_calls if rate_limit_calls is None else rate_limit_calls,
            settings.proxy_rate_limit_period if rate_limit_period is None else rate_limit_period,
        )
        self._http: httpx.Client = http_client or httpx.Client(timeout=self.timeout)

    def close(self) -> None:
        self._http.close()

    def __enter__(self) -> "ProxyChainClient":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def get_proxied_by(self, voter: str) -> list[ProxyChainRecord]:
        """Accounts reported as proxying to ``voter``."""

        def _get() -> object:
            self.rate_limiter.wait()
            response: httpx.Response = self._http.get(f"{self.base_url}/{voter}")
            response.raise_for_status()
            return response.json()

        data: object = _retry_call(
            _get, self.retry_attempts, self.retry_delay, f"proxy chain for {voter}"
        )
        if not isinstance(data, dict) or data.get("code") != 0:
            code: object = data.get("code") if isinstance(data, dict) else None
            raise ProxyLookupError(f"Proxy chain lookup for {voter} failed with code {code}")
        result: object = data.get("result")
        proxied_by: object = result.get("proxied_by") if isinstance(result, dict) else None
        if proxied_by is None:
            return []
        if not isinstance(proxied_by, list):
            raise ProxyLookupError(f"Proxy chain for {voter} has a non-list proxied_by")
        return [ProxyChainRecord.from_rpc(row, voter) for row in proxied_by if isinstance(row, dict)]

    def get_proxy_chains(self, voters: Sequence[str]) -> ProxyChainLookup:
        """Look up every voter; failed voters are logged and skipped."""
        chains: dict[str, list[ProxyChainRecord]] = {}
        failed: list[str] = []
        with ThreadPoolExecutor(max_workers=max(self.workers, 1)) as pool:
            futures: dict[str, Future[list[ProxyChainRecord]]] = {
                voter: pool.submit(self.get_proxied_by, voter) for voter in voters
            }
            for voter, future in futures.items():
                try:
                    chains[voter] = future.result()
                except (ChainClientError, IngestionError) as e:
                    logger.error("Proxy chain lookup failed", voter=voter, error=str(e))
                    failed.append(voter)
                    continue
                logger.debug("Fetched proxy chain", voter=voter, proxies=len(chains[voter]))

        lookup = ProxyChainLookup(chains=chains, failed_voters=failed)
        logger.info(
            "Fetched proxy chains",
            voters=len(voters),
            records=lookup.record_count,
            failed=len(failed),
        )
        return lookup
