"""
mock_pharmaml_server.py — Mock Implementation of a Wholesaler PharmaML Server

This module provides a simulated répartiteur endpoint for testing the transmission
layer. It exposes a small FastAPI application that mimics the behaviour of real
PharmaML servers, including the inconsistent ones.

Simulation Scenarios (selected by the IdOfficine of the incoming order):
    • Any other value      → Acknowledgement with an order number (PM-123, PM-124, ...)
    • Starts with "REJECT" → Rejection: unknown officine (inside an HTTP 200 body)
    • Starts with "TIMEOUT"→ Never answers in time
    • Starts with "MALFORMED" → Body that is not XML
    • Starts with "NOACK"  → Well-formed XML without acknowledgement
    • Starts with "HTTP500"→ HTTP 500 with an error page
    • TypeMessage TEST     → Probe answer, no order created

Endpoints:
    POST /pharmaml — Receives PharmaML messages.

Port:
    Default: 8010 (HTTP)
"""

import asyncio
import logging
import os
from xml.etree import ElementTree
from xml.sax.saxutils import escape

from fastapi import FastAPI, Request
from fastapi.responses import Response

logging.basicConfig(level=logging.INFO)
MOCK_TIMEOUT_DELAY = float(os.environ.get("MOCK_TIMEOUT_DELAY", "60"))


def _local(tag: str) -> str:
    return tag.split("}")[-1] if "}" in tag else tag


def _field(root: ElementTree.Element, name: str) -> str:
    for elem in root.iter():
        if _local(elem.tag) == name:
            return (elem.text or "").strip()
    return ""


def _xml(body: str, status_code: int = 200) -> Response:
    return Response(
        content=f'<?xml version="1.0" encoding="UTF-8"?>\n{body}',
        status_code=status_code,
        media_type="application/xml",
    )


def create_app(first_order_number: int = 123) -> FastAPI:
    """
    Builds a mock server with its own order counter and inbox.

    Args:
        first_order_number (int): Number assigned to the first accepted order.
    """
    app = FastAPI(title="Mock PharmaML Server")
    app.state.next_order_number = first_order_number
    app.state.received = []

    @app.post("/pharmaml")
    async def receive_message(request: Request):
        """
        Handles an incoming PharmaML message and answers according to the scenario.

        Returns:
            Response: PharmaMLReponse XML (or garbage / HTTP 500 for the failure scenarios).
        """
        raw = await request.body()
        app.state.received.append(raw)

        try:
            root = ElementTree.fromstring(raw)
        except ElementTree.ParseError:
            logging.warning("[PHARMAML] Message illisible reçu.")
            return _xml(
                "<PharmaMLReponse><Erreur><CodeErreur>XML_INVALIDE</CodeErreur>"
                "<MessageErreur>Message illisible</MessageErreur></Erreur></PharmaMLReponse>",
                status_code=400,
            )

        if _field(root, "TypeMessage") == "TEST":
            logging.info("[PHARMAML] Message de test reçu.")
            return _xml("<PharmaMLReponse><Statut>OK</Statut>"
                        "<Message>Serveur PharmaML opérationnel</Message></PharmaMLReponse>")

        officine = escape(_field(root, "IdOfficine"))
        reference = escape(_field(root, "NumeroCommande"))
        logging.info(f"[PHARMAML] Commande {reference} reçue de l'officine {officine}.")

        # Scenario simulation
        if officine.startswith("REJECT"):
            logging.warning(f"[PHARMAML] Commande {reference} rejetée: officine inconnue.")
            return _xml(
                "<PharmaMLReponse><Statut>REJET</Statut><Erreur><CodeErreur>E042</CodeErreur>"
                f"<MessageErreur>Officine {officine} inconnue du répartiteur</MessageErreur>"
                "</Erreur></PharmaMLReponse>"
            )

        if officine.startswith("TIMEOUT"):
            logging.info(f"[PHARMAML] Simule un timeout pour {reference}...")
            await asyncio.sleep(MOCK_TIMEOUT_DELAY)
            return _xml("<PharmaMLReponse><Statut>TROP_TARD</Statut></PharmaMLReponse>")

        if officine.startswith("MALFORMED"):
            return Response(content="<not-xml", media_type="text/plain")

        if officine.startswith("NOACK"):
            return _xml("<PharmaMLReponse><Statut>EN_COURS</Statut></PharmaMLReponse>")

        if officine.startswith("HTTP500"):
            return Response(content="<html><body>Internal Server Error</body></html>",
                            status_code=500, media_type="text/html")

        # Success case
        number = f"PM-{app.state.next_order_number}"
        app.state.next_order_number += 1
        logging.info(f"[PHARMAML] Commande {reference} acceptée sous le n° {number}.")
        return _xml(
            "<PharmaMLReponse><Statut>OK</Statut><AccuseReception>"
            f"<NumeroCommandeRepartiteur>{number}</NumeroCommandeRepartiteur>"
            f"<NumeroCommande>{reference}</NumeroCommande>"
            f"<Message>Commande {reference} acceptée</Message>"
            "</AccuseReception></PharmaMLReponse>"
        )

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8010)
