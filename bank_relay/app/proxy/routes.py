"""
Proxy Routes - Bank Request Forwarding
======================================

Bank-specific routers that forward authenticated requests to the upstream
banking APIs over mTLS.

Security Model:
---------------
1. Every route requires the shared secret header (router-level dependency)
2. The relay attaches the bank's client certificate; callers never see it
3. The inbound Authorization header is passed through unmodified
4. Caller-supplied path and query values are percent-encoded
5. Upstream status and body are relayed verbatim, including 4xx/5xx

Endpoints (Inter, prefix /inter):
---------------------------------
- POST /oauth/token                 -> /oauth/v2/token
- GET  /banking/saldo               -> /banking/v2/saldo
- GET  /banking/extrato             -> /banking/v2/extrato
- POST /pix/cob                     -> /pix/v2/cob
- PUT  /pix/cob/{txid}              -> /pix/v2/cob/{txid}
- GET  /pix/cob/{txid}              -> /pix/v2/cob/{txid}
- POST /cobranca/boletos            -> /cobranca/v3/cobrancas
- GET  /cobranca/boletos/{codigo}   -> /cobranca/v3/cobrancas/{codigo}
- ANY  /proxy/{path}                -> /{path}

Endpoints (Sicoob, prefix /sicoob, environment-selectable):
------------------------------------------------------------
- GET  /conta-corrente/saldo                -> /conta-corrente/v4/saldo
- GET  /conta-corrente/extrato/{mes}/{ano}  -> /conta-corrente/v4/extrato/{mes}/{ano}
- POST /pix/cob                             -> /pix/api/v2/cob
- PUT  /pix/cob/{txid}                      -> /pix/api/v2/cob/{txid}
- GET  /pix/cob/{txid}                      -> /pix/api/v2/cob/{txid}
- POST /cobranca/boletos                    -> /cobranca-bancaria/v3/boletos
- GET  /cobranca/boletos                    -> /cobranca-bancaria/v3/boletos
- ANY  /proxy/{path}                        -> /{path}
"""

import logging
from typing import Any, Dict, Optional
from urllib.parse import urlencode

from fastapi import APIRouter, Body, Depends, Query, Request, Response

from ..auth import require_proxy_secret
from ..credentials import Bank
from ..forwarding import upstream_path
from ..models import InterTokenRequest
from .forwarder import FORM_CONTENT_TYPE, encode_json, passthrough, relay

logger = logging.getLogger(__name__)

PASSTHROUGH_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS"]

inter_router = APIRouter(
    prefix="/inter",
    tags=["Banco Inter"],
    dependencies=[Depends(require_proxy_secret)],
)

sicoob_router = APIRouter(
    prefix="/sicoob",
    tags=["Sicoob"],
    dependencies=[Depends(require_proxy_secret)],
)


# ============================================================================
# Banco Inter
# ============================================================================

@inter_router.post("/oauth/token")
async def inter_oauth_token(request: Request, payload: InterTokenRequest) -> Response:
    """
    Exchange client credentials for an Inter access token.

    The JSON payload is re-encoded as the form body Inter expects.
    """
    form = urlencode(payload.form_fields()).encode("utf-8")
    return await relay(request, Bank.INTER, "POST", "/oauth/v2/token", form, FORM_CONTENT_TYPE)


@inter_router.get("/banking/saldo")
async def inter_balance(
    request: Request,
    dataSaldo: Optional[str] = Query(None, description="Balance date (YYYY-MM-DD)"),
) -> Response:
    path = upstream_path("/banking/v2/saldo", query={"dataSaldo": dataSaldo})
    return await relay(request, Bank.INTER, "GET", path)


@inter_router.get("/banking/extrato")
async def inter_statement(
    request: Request,
    dataInicio: str = Query(..., description="Start date (YYYY-MM-DD)"),
    dataFim: str = Query(..., description="End date (YYYY-MM-DD)"),
) -> Response:
    path = upstream_path(
        "/banking/v2/extrato",
        query={"dataInicio": dataInicio, "dataFim": dataFim},
    )
    return await relay(request, Bank.INTER, "GET", path)


@inter_router.post("/pix/cob")
async def inter_create_pix_charge(
    request: Request,
    payload: Dict[str, Any] = Body(...),
) -> Response:
    """Create an immediate PIX charge with an Inter-generated txid."""
    return await relay(request, Bank.INTER, "POST", "/pix/v2/cob", encode_json(payload))


@inter_router.put("/pix/cob/{txid}")
async def inter_put_pix_charge(
    request: Request,
    txid: str,
    payload: Dict[str, Any] = Body(...),
) -> Response:
    path = upstream_path("/pix/v2/cob", txid)
    return await relay(request, Bank.INTER, "PUT", path, encode_json(payload))


@inter_router.get("/pix/cob/{txid}")
async def inter_get_pix_charge(request: Request, txid: str) -> Response:
    return await relay(request, Bank.INTER, "GET", upstream_path("/pix/v2/cob", txid))


@inter_router.post("/cobranca/boletos")
async def inter_create_boleto(
    request: Request,
    payload: Dict[str, Any] = Body(...),
) -> Response:
    return await relay(request, Bank.INTER, "POST", "/cobranca/v3/cobrancas", encode_json(payload))


@inter_router.get("/cobranca/boletos/{codigo}")
async def inter_get_boleto(request: Request, codigo: str) -> Response:
    path = upstream_path("/cobranca/v3/cobrancas", codigo)
    return await relay(request, Bank.INTER, "GET", path)


@inter_router.api_route("/proxy/{subpath:path}", methods=PASSTHROUGH_METHODS)
async def inter_passthrough(request: Request, subpath: str) -> Response:
    """Untyped passthrough to any Inter path. Bypasses request-shape validation."""
    return await passthrough(request, Bank.INTER, subpath)


# ============================================================================
# Sicoob
# ============================================================================

@sicoob_router.get("/conta-corrente/saldo")
async def sicoob_balance(
    request: Request,
    numeroContaCorrente: Optional[str] = Query(None, description="Checking account number"),
) -> Response:
    path = upstream_path(
        "/conta-corrente/v4/saldo",
        query={"numeroContaCorrente": numeroContaCorrente},
    )
    return await relay(request, Bank.SICOOB, "GET", path)


@sicoob_router.get("/conta-corrente/extrato/{mes}/{ano}")
async def sicoob_statement(
    request: Request,
    mes: int,
    ano: int,
    numeroContaCorrente: Optional[str] = Query(None),
    diaInicial: Optional[int] = Query(None, ge=1, le=31),
    diaFinal: Optional[int] = Query(None, ge=1, le=31),
) -> Response:
    path = upstream_path(
        "/conta-corrente/v4/extrato",
        str(mes),
        str(ano),
        query={
            "numeroContaCorrente": numeroContaCorrente,
            "diaInicial": diaInicial,
            "diaFinal": diaFinal,
        },
    )
    return await relay(request, Bank.SICOOB, "GET", path)


@sicoob_router.post("/pix/cob")
async def sicoob_create_pix_charge(
    request: Request,
    payload: Dict[str, Any] = Body(...),
) -> Response:
    return await relay(request, Bank.SICOOB, "POST", "/pix/api/v2/cob", encode_json(payload))


@sicoob_router.put("/pix/cob/{txid}")
async def sicoob_put_pix_charge(
    request: Request,
    txid: str,
    payload: Dict[str, Any] = Body(...),
) -> Response:
    path = upstream_path("/pix/api/v2/cob", txid)
    return await relay(request, Bank.SICOOB, "PUT", path, encode_json(payload))


@sicoob_router.get("/pix/cob/{txid}")
async def sicoob_get_pix_charge(request: Request, txid: str) -> Response:
    return await relay(request, Bank.SICOOB, "GET", upstream_path("/pix/api/v2/cob", txid))


@sicoob_router.post("/cobranca/boletos")
async def sicoob_create_boleto(
    request: Request,
    payload: Any = Body(...),
) -> Response:
    """Register one boleto (object) or a batch (list), as Sicoob accepts both."""
    return await relay(
        request, Bank.SICOOB, "POST", "/cobranca-bancaria/v3/boletos", encode_json(payload)
    )


@sicoob_router.get("/cobranca/boletos")
async def sicoob_get_boleto(
    request: Request,
    numeroCliente: Optional[str] = Query(None),
    codigoModalidade: Optional[str] = Query(None),
    nossoNumero: Optional[str] = Query(None),
    linhaDigitavel: Optional[str] = Query(None),
    codigoBarras: Optional[str] = Query(None),
) -> Response:
    path = upstream_path(
        "/cobranca-bancaria/v3/boletos",
        query={
            "numeroCliente": numeroCliente,
            "codigoModalidade": codigoModalidade,
            "nossoNumero": nossoNumero,
            "linhaDigitavel": linhaDigitavel,
            "codigoBarras": codigoBarras,
        },
    )
    return await relay(request, Bank.SICOOB, "GET", path)


@sicoob_router.api_route("/proxy/{subpath:path}", methods=PASSTHROUGH_METHODS)
async def sicoob_passthrough(request: Request, subpath: str) -> Response:
    """Untyped passthrough to any Sicoob path. Bypasses request-shape validation."""
    return await passthrough(request, Bank.SICOOB, subpath)
