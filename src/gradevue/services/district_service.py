import re
from dataclasses import dataclass
from typing import List
from xml.etree import ElementTree

import requests
from requests import RequestException

from gradevue.app_logger import get_logger
from gradevue.config.settings import settings

logger = get_logger("districts")

SOAP_ACTION = "http://edupoint.com/webservices/ProcessWebServiceRequest"
SERVICE_NS = "http://edupoint.com/webservices/"
_XML_DECLARATION = re.compile(r"^\s*<\?xml[^>]*\?>")

ENVELOPE_TEMPLATE = """<?xml version="1.0" encoding="utf-8"?>
<soap:Envelope xmlns:xsi="http://www.w3.org/2001/XMLSchema-instance"
  xmlns:xsd="http://www.w3.org/2001/XMLSchema"
  xmlns:soap="http://schemas.xmlsoap.org/soap/envelope/">
  <soap:Body>
    <ProcessWebServiceRequest xmlns="http://edupoint.com/webservices/">
      <userID>EdupointDistrictInfo</userID>
      <password>Edup01nt</password>
      <skipLoginLog>1</skipLoginLog>
      <parent>0</parent>
      <webServiceHandleName>HDInfoServices</webServiceHandleName>
      <methodName>GetMatchingDistrictList</methodName>
      <paramStr>{param_str}</paramStr>
    </ProcessWebServiceRequest>
  </soap:Body>
</soap:Envelope>
"""


class DistrictServiceError(Exception):
    pass


@dataclass(frozen=True)
class DistrictInfo:
    name: str
    address: str
    host: str


def _param_str(zip_code: int) -> str:
    # paramStr carries an escaped inner XML document
    return (
        f"&lt;Parms&gt;&lt;Key&gt;{settings.district_lookup_key}&lt;/Key&gt;"
        f"&lt;MatchToDistrictZipCode&gt;{zip_code}&lt;/MatchToDistrictZipCode&gt;&lt;/Parms&gt;"
    )


def parse_districts(body: str) -> List[DistrictInfo]:
    try:
        envelope = ElementTree.fromstring(_XML_DECLARATION.sub("", body))
        result = envelope.find(f".//{{{SERVICE_NS}}}ProcessWebServiceRequestResult")
        if result is None or not result.text:
            raise DistrictServiceError("Missing ProcessWebServiceRequestResult in response")
        inner = ElementTree.fromstring(_XML_DECLARATION.sub("", result.text))
    except ElementTree.ParseError as exc:
        raise DistrictServiceError(f"Malformed district response: {exc}") from exc

    return [
        DistrictInfo(
            name=entry.get("Name", ""),
            address=entry.get("Address", ""),
            host=entry.get("PvueURL", ""),
        )
        for entry in inner.iter("DistrictInfo")
    ]


def fetch_districts(zip_code: int) -> List[DistrictInfo]:
    headers = {
        "Content-Type": "text/xml; charset=utf-8",
        "SOAPAction": SOAP_ACTION,
    }
    body = ENVELOPE_TEMPLATE.format(param_str=_param_str(zip_code))
    try:
        res = requests.post(
            settings.district_lookup_url,
            data=body.encode("utf-8"),
            headers=headers,
            timeout=settings.request_timeout,
        )
    except RequestException as exc:
        logger.warning("District lookup for %s failed: %s", zip_code, exc)
        raise DistrictServiceError("DISTRICT_LOOKUP_UNAVAILABLE") from exc

    if not res.ok:
        raise DistrictServiceError(res.text)

    districts = parse_districts(res.text)
    logger.info("District lookup for %s returned %d result(s)", zip_code, len(districts))
    return districts
