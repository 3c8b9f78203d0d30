from __future__ import annotations

import logging
import sys
import time
from dataclasses import asdict
from datetime import datetime, timedelta, timezone
from typing import Callable

import typer

from ridehail.common.run_id import generate_run_id
from ridehail.common.sanitize import maskSecret, maskSecretsInObject
from ridehail.common.time_utils import getDurationMs
from ridehail.config import Settings, load_settings
from ridehail.domain.actionable_errors import ActionableError
from ridehail.domain.models import DeliveryListRequest, DriverPaymentsQuery, EstimateRequest
from ridehail.domain.paging import NO_THROTTLE, Pager
from ridehail.errors import AppError, TokenNotConfiguredError
from ridehail.infra.auth.oauth2 import OAuth2AppConfig, OAuth2Token, OAuth2TokenSource
from ridehail.infra.http.api_errors import StructuredError
from ridehail.infra.http.uber_client import UberClient
from ridehail.infra.logging.setup import StdStreamToLogger, TeeStream, closeLogger, createCommandLogger, logEvent
from ridehail.infra.secrets.token_file import TokenFileStore
from ridehail.usecases.collect_pages_usecase import CollectPagesUseCase
from ridehail.usecases.fare_quote_usecase import FareQuoteUseCase

app = typer.Typer(no_args_is_help=True, add_completion=False)

DEFAULT_CREDENTIALS_FILE = "./credentials.json"


def printRunHeader(runId: str, command: str, settings: Settings, sources: list[str]) -> None:
    """
    Назначение:
        Печатает безопасную сводку параметров запуска (без секретов).
    """
    typer.echo(
        f"run_id={runId} command={command} sandbox={settings.sandbox} "
        f"token={maskSecret(settings.token)} credentials_file={settings.credentials_file} "
        f"sources={sources} log_level={settings.log_level}"
    )


def reportError(logger: logging.Logger, runId: str, component: str, exc: AppError) -> int:
    """
    Назначение:
        Единая обработка ошибок команд: лог + stderr, exit code 2.
    Алгоритм:
        - Для StructuredError/ActionableError дополнительно печатается подсказка из таблицы сигнатур.
    """
    logEvent(logger, logging.ERROR, runId, component, f"{exc.code}: {exc.message}")
    typer.echo(f"ERROR: {exc.message}", err=True)
    actionable = exc if isinstance(exc, ActionableError) else None
    if isinstance(exc, StructuredError):
        actionable = exc.actionable()
    if actionable is not None:
        typer.echo(f"HINT: {actionable.message}", err=True)
        if actionable.has_action():
            typer.echo(f"ACTION: {actionable.action}", err=True)
    return 2


def buildPager(settings: Settings) -> Pager:
    if settings.throttle_ms < 0:
        throttle: float | None = NO_THROTTLE
    elif settings.throttle_ms == 0:
        throttle = None
    else:
        throttle = settings.throttle_ms / 1000.0
    return Pager(
        limit_per_page=settings.page_size,
        max_pages=settings.max_pages,
        throttle_seconds=throttle,
    )


def buildClient(settings: Settings, logger: logging.Logger | None, runId: str) -> UberClient:
    """
    Назначение:
        Собирает UberClient из настроек.
    Алгоритм:
        - token (CLI/ENV/config) имеет приоритет;
        - иначе credentials_file с OAuth2 токеном (refresh, если заданы client id/secret);
        - иначе TokenNotConfiguredError.
    """
    common = {
        "sandbox": settings.sandbox,
        "timeout_seconds": settings.timeout_seconds,
        "logger": logger,
        "run_id": runId,
    }
    if settings.token:
        return UberClient(token=settings.token, **common)
    if settings.credentials_file:
        token = TokenFileStore(settings.credentials_file).read()
        app_config = None
        if settings.oauth2_client_id and settings.oauth2_client_secret:
            app_config = OAuth2AppConfig(settings.oauth2_client_id, settings.oauth2_client_secret)
        return UberClient(token_source=OAuth2TokenSource(token, app=app_config), **common)
    raise TokenNotConfiguredError("no token configured: use --token, UBER_TOKEN_KEY or --credentials-file")


def runCommand(ctx: typer.Context, commandName: str, runner: Callable[[logging.Logger], int]) -> None:
    """
    Назначение:
        Унифицированная обвязка выполнения команд:
        - создаёт логгер + файл лога
        - перенаправляет stdout/stderr в лог (tee)
        - переводит AppError в exit code 2
    """
    runId = ctx.obj["runId"]
    settings: Settings = ctx.obj["settings"]
    sources = ctx.obj["sources"]

    startMonotonic = time.monotonic()

    try:
        logger, _logFilePath = createCommandLogger(
            commandName=commandName,
            logDir=settings.log_dir,
            runId=runId,
            logLevel=settings.log_level,
        )
    except ValueError as exc:
        typer.echo(f"ERROR: {exc}", err=True)
        raise typer.Exit(code=2)

    originalStdout = sys.stdout
    originalStderr = sys.stderr

    sys.stdout = TeeStream(originalStdout, StdStreamToLogger(logger, logging.INFO, runId, "stdout"))
    sys.stderr = TeeStream(originalStderr, StdStreamToLogger(logger, logging.ERROR, runId, "stderr"))

    exitCode = 0
    try:
        logEvent(logger, logging.INFO, runId, "core", "Command started")
        logEvent(logger, logging.INFO, runId, "core", f"settings={maskSecretsInObject(asdict(settings))}")
        printRunHeader(runId, commandName, settings, sources)
        try:
            exitCode = runner(logger)
        except AppError as exc:
            exitCode = reportError(logger, runId, "core", exc)
        except OSError as exc:
            logEvent(logger, logging.ERROR, runId, "core", f"I/O error: {exc}")
            typer.echo(f"ERROR: {exc}", err=True)
            exitCode = 2
    finally:
        durationMs = getDurationMs(startMonotonic, time.monotonic())
        logEvent(logger, logging.INFO, runId, "core", f"Command finished exit_code={exitCode} durationMs={durationMs}")
        sys.stdout.flush()
        sys.stderr.flush()
        sys.stdout = originalStdout
        sys.stderr = originalStderr
        closeLogger(logger)

    if exitCode:
        raise typer.Exit(code=exitCode)


def _estimate_request(
    startLat: float,
    startLng: float,
    endLat: float,
    endLng: float,
    seatCount: int,
    productId: str | None,
    startPlace: str | None,
    endPlace: str | None,
) -> EstimateRequest:
    return EstimateRequest(
        start_latitude=startLat,
        start_longitude=startLng,
        end_latitude=endLat,
        end_longitude=endLng,
        seat_count=seatCount,
        product_id=productId,
        start_place=startPlace,
        end_place=endPlace,
    )


@app.callback()
def main(
    ctx: typer.Context,
    config: str | None = typer.Option(None, "--config", help="Path to config.yml"),
    runId: str | None = typer.Option(None, "--run-id", help="Run identifier (UUID). If omitted, generated."),
    logLevel: str | None = typer.Option(None, "--log-level", help="Log level: ERROR|WARN|INFO|DEBUG"),
    logDir: str | None = typer.Option(None, "--log-dir", help="Directory for logs."),
    token: str | None = typer.Option(None, "--token", help="Bearer token (avoid; prefer UBER_TOKEN_KEY)"),
    credentialsFile: str | None = typer.Option(None, "--credentials-file", help="OAuth2 credentials JSON file"),
    sandbox: bool | None = typer.Option(None, "--sandbox/--no-sandbox", help="Use the sandbox API host"),
    timeoutSeconds: float | None = typer.Option(None, "--timeout-seconds", help="API timeout in seconds"),
    pageSize: int | None = typer.Option(None, "--page-size", help="Items per page for paginated calls"),
    maxPages: int | None = typer.Option(None, "--max-pages", help="Max pages to fetch (0 = unbounded)"),
    throttleMs: int | None = typer.Option(None, "--throttle-ms", help="Pause between pages in ms (-1 = none)"),
):
    """
    Назначение:
        Глобальная инициализация CLI:
        - генерирует/принимает run_id
        - загружает настройки (CLI > ENV > config > defaults)
        - сохраняет всё в ctx.obj для подкоманд
    """
    if not runId:
        runId = generate_run_id()

    cliOverrides = {
        "token": token,
        "credentials_file": credentialsFile,
        "sandbox": sandbox,
        "timeout_seconds": timeoutSeconds,
        "log_level": logLevel,
        "log_dir": logDir,
        "page_size": pageSize,
        "max_pages": maxPages,
        "throttle_ms": throttleMs,
    }
    try:
        loaded = load_settings(config_path=config, cli_overrides=cliOverrides)
    except ValueError as exc:
        typer.echo(f"ERROR: invalid settings: {exc}", err=True)
        raise typer.Exit(code=2)

    ctx.obj = {
        "runId": runId,
        "settings": loaded.settings,
        "sources": loaded.sources_used,
        "configPath": config,
    }


@app.command()
def history(ctx: typer.Context):
    """Trip history, page by page."""
    settings: Settings = ctx.obj["settings"]
    runId = ctx.obj["runId"]

    def execute(logger: logging.Logger) -> int:
        with buildClient(settings, logger, runId) as client:
            def printPage(page) -> None:
                for trip in page.items:
                    typer.echo(
                        f"page={page.page_number} request_id={trip.request_id} status={trip.status} "
                        f"distance={trip.distance_miles} product_id={trip.product_id}"
                    )

            result = CollectPagesUseCase(logger, runId, "history").collect(
                client.list_history(buildPager(settings)), printPage
            )
            if result.error is not None:
                return reportError(logger, runId, "history", result.error)
            typer.echo(f"pages={result.pages} trips={len(result.items)}")
            return 0

    runCommand(ctx, "history", execute)


@app.command("estimate-price")
def estimatePrice(
    ctx: typer.Context,
    startLat: float = typer.Option(0.0, "--start-lat"),
    startLng: float = typer.Option(0.0, "--start-lng"),
    endLat: float = typer.Option(0.0, "--end-lat"),
    endLng: float = typer.Option(0.0, "--end-lng"),
    seatCount: int = typer.Option(0, "--seat-count", help="Seats for shared products (0..2)"),
    productId: str | None = typer.Option(None, "--product-id"),
    startPlace: str | None = typer.Option(None, "--start-place", help="home|work"),
    endPlace: str | None = typer.Option(None, "--end-place", help="home|work"),
):
    """Price estimates per product."""
    settings: Settings = ctx.obj["settings"]
    runId = ctx.obj["runId"]

    def execute(logger: logging.Logger) -> int:
        with buildClient(settings, logger, runId) as client:
            request = _estimate_request(startLat, startLng, endLat, endLng, seatCount, productId, startPlace, endPlace)

            def printPage(page) -> None:
                for estimate in page.items:
                    typer.echo(
                        f"product_id={estimate.product_id} name={estimate.display_name} "
                        f"estimate={estimate.estimate} surge={estimate.surge_multiplier}"
                    )

            result = CollectPagesUseCase(logger, runId, "prices").collect(
                client.estimate_price(request, buildPager(settings)), printPage
            )
            if result.error is not None:
                return reportError(logger, runId, "prices", result.error)
            typer.echo(f"pages={result.pages} estimates={len(result.items)}")
            return 0

    runCommand(ctx, "estimate-price", execute)


@app.command("estimate-time")
def estimateTime(
    ctx: typer.Context,
    startLat: float = typer.Option(0.0, "--start-lat"),
    startLng: float = typer.Option(0.0, "--start-lng"),
    endLat: float = typer.Option(0.0, "--end-lat"),
    endLng: float = typer.Option(0.0, "--end-lng"),
    productId: str | None = typer.Option(None, "--product-id"),
    startPlace: str | None = typer.Option(None, "--start-place", help="home|work"),
    endPlace: str | None = typer.Option(None, "--end-place", help="home|work"),
):
    """Pickup time estimates per product."""
    settings: Settings = ctx.obj["settings"]
    runId = ctx.obj["runId"]

    def execute(logger: logging.Logger) -> int:
        with buildClient(settings, logger, runId) as client:
            request = _estimate_request(startLat, startLng, endLat, endLng, 0, productId, startPlace, endPlace)

            def printPage(page) -> None:
                for estimate in page.items:
                    typer.echo(
                        f"product_id={estimate.product_id} name={estimate.display_name} eta_seconds={estimate.eta_seconds}"
                    )

            result = CollectPagesUseCase(logger, runId, "times").collect(
                client.estimate_time(request, buildPager(settings)), printPage
            )
            if result.error is not None:
                return reportError(logger, runId, "times", result.error)
            typer.echo(f"pages={result.pages} estimates={len(result.items)}")
            return 0

    runCommand(ctx, "estimate-time", execute)


@app.command()
def quote(
    ctx: typer.Context,
    startLat: float = typer.Option(0.0, "--start-lat"),
    startLng: float = typer.Option(0.0, "--start-lng"),
    endLat: float = typer.Option(0.0, "--end-lat"),
    endLng: float = typer.Option(0.0, "--end-lng"),
    seatCount: int = typer.Option(0, "--seat-count", help="Seats for shared products (0..2)"),
    startPlace: str | None = typer.Option(None, "--start-place", help="home|work"),
    endPlace: str | None = typer.Option(None, "--end-place", help="home|work"),
):
    """Upfront fares for every product returned by the price estimates."""
    settings: Settings = ctx.obj["settings"]
    runId = ctx.obj["runId"]

    def execute(logger: logging.Logger) -> int:
        with buildClient(settings, logger, runId) as client:
            request = _estimate_request(startLat, startLng, endLat, endLng, seatCount, None, startPlace, endPlace)
            estimates = CollectPagesUseCase(logger, runId, "prices").collect(
                client.estimate_price(request, buildPager(settings))
            )
            if estimates.error is not None:
                return reportError(logger, runId, "prices", estimates.error)

            quotes = FareQuoteUseCase(client, logger, runId).quote(request, [e.product_id for e in estimates.items])
            failed = 0
            for item in quotes:
                if not item.ok:
                    failed += 1
                    typer.echo(f"product_id={item.product_id} error={item.error.message}")
                    continue
                fare = item.fare.fare if item.fare else None
                typer.echo(
                    f"product_id={item.product_id} fare_id={fare.fare_id if fare else None} "
                    f"display={fare.display if fare else None}"
                )
            typer.echo(f"products={len(quotes)} failed={failed}")
            return 0

    runCommand(ctx, "quote", execute)


@app.command()
def deliveries(
    ctx: typer.Context,
    status: str = typer.Option("ready", "--status", help="Delivery status filter"),
):
    """Deliveries, page by page."""
    settings: Settings = ctx.obj["settings"]
    runId = ctx.obj["runId"]

    def execute(logger: logging.Logger) -> int:
        with buildClient(settings, logger, runId) as client:
            def printPage(page) -> None:
                for delivery in page.items:
                    typer.echo(
                        f"delivery_id={delivery.delivery_id} status={delivery.status} "
                        f"fee={delivery.fee} currency={delivery.currency_code}"
                    )

            result = CollectPagesUseCase(logger, runId, "deliveries").collect(
                client.list_deliveries(DeliveryListRequest(status=status), buildPager(settings)), printPage
            )
            if result.error is not None:
                return reportError(logger, runId, "deliveries", result.error)
            typer.echo(f"pages={result.pages} deliveries={len(result.items)}")
            return 0

    runCommand(ctx, "deliveries", execute)


@app.command("driver-payments")
def driverPayments(
    ctx: typer.Context,
    fromDate: datetime | None = typer.Option(None, "--from", help="Start date (ISO 8601, UTC if naive)"),
    toDate: datetime | None = typer.Option(None, "--to", help="End date (ISO 8601, UTC if naive)"),
):
    """Driver payments, page by page."""
    settings: Settings = ctx.obj["settings"]
    runId = ctx.obj["runId"]

    def execute(logger: logging.Logger) -> int:
        with buildClient(settings, logger, runId) as client:
            query = DriverPaymentsQuery(start_date=fromDate, end_date=toDate)

            def printPage(page) -> None:
                for payment in page.items:
                    typer.echo(
                        f"payment_id={payment.payment_id} category={payment.category} "
                        f"amount={payment.amount} currency={payment.currency_code} trip_id={payment.trip_id}"
                    )

            result = CollectPagesUseCase(logger, runId, "payments").collect(
                client.list_driver_payments(query, buildPager(settings)), printPage
            )
            if result.error is not None:
                return reportError(logger, runId, "payments", result.error)
            typer.echo(f"pages={result.pages} payments={len(result.items)}")
            return 0

    runCommand(ctx, "driver-payments", execute)


@app.command("payment-methods")
def paymentMethods(ctx: typer.Context):
    """Rider payment methods."""
    settings: Settings = ctx.obj["settings"]
    runId = ctx.obj["runId"]

    def execute(logger: logging.Logger) -> int:
        with buildClient(settings, logger, runId) as client:
            listing = client.list_payment_methods()
        for method in listing.methods:
            typer.echo(
                f"payment_method_id={method.payment_method_id} type={method.type} description={method.description}"
            )
        typer.echo(f"methods={len(listing.methods)} last_used={listing.last_used}")
        return 0

    runCommand(ctx, "payment-methods", execute)


@app.command()
def profile(
    ctx: typer.Context,
    driver: bool = typer.Option(False, "--driver", help="Show the driver profile instead of the rider one"),
):
    """Profile of the authorized user."""
    settings: Settings = ctx.obj["settings"]
    runId = ctx.obj["runId"]

    def execute(logger: logging.Logger) -> int:
        with buildClient(settings, logger, runId) as client:
            me = client.driver_profile() if driver else client.retrieve_my_profile()
            typer.echo(
                f"uuid={me.uuid} first_name={me.first_name} last_name={me.last_name} "
                f"email={me.email} rating={me.rating}"
            )
            return 0

    runCommand(ctx, "profile", execute)


@app.command()
def init(
    ctx: typer.Context,
    accessToken: str = typer.Option(..., "--access-token", help="OAuth2 access token"),
    refreshToken: str | None = typer.Option(None, "--refresh-token", help="OAuth2 refresh token"),
    expiresIn: int | None = typer.Option(None, "--expires-in", help="Access token lifetime in seconds"),
    path: str | None = typer.Option(None, "--path", help="Where to store credentials (default: --credentials-file)"),
):
    """Store OAuth2 credentials for later commands."""
    settings: Settings = ctx.obj["settings"]
    runId = ctx.obj["runId"]

    def execute(logger: logging.Logger) -> int:
        target = path or settings.credentials_file or DEFAULT_CREDENTIALS_FILE
        expiry = datetime.now(timezone.utc) + timedelta(seconds=expiresIn) if expiresIn else None
        store = TokenFileStore(target)
        store.write(OAuth2Token(access_token=accessToken, refresh_token=refreshToken, expiry=expiry))
        logEvent(logger, logging.INFO, runId, "credentials", f"credentials stored path={store.path}")
        typer.echo(f"credentials_file={store.path} access_token={maskSecret(accessToken)}")
        return 0

    runCommand(ctx, "init", execute)
