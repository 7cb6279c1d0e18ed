from __future__ import annotations

import asyncio
from dataclasses import asdict
from typing import Any

from efficy_gateway.beans import read_bean, read_id_list, read_number, read_query_rows, read_raw_text, read_text
from efficy_gateway.client.api_client import EfficyApiClient, encode_component
from efficy_gateway.client.http import HttpClient
from efficy_gateway.client.models import (
    BrokerCreateOpportunityInput,
    BrokerEnterprise,
    BrokerOpportunity,
    BrokerOpportunityFormOptions,
    BrokerOpportunityWithDisplay,
    BrokerPerson,
)
from efficy_gateway.client.referentials import ReferentialCache

MAX_RESULTS = 100

OPPORTUNITY_RESTRICT_TO = (
    "{OppEntID,OppPerID,OppStoID,OppStuID,OppTitle,OppDate,OppNumRef,OppGammeShouhaitee_,"
    "OppOpbID,OppNivSouhaite_,OppRegimeAssurance_,OppStake,OppDetail}"
)
ENTERPRISE_RESTRICT_TO = "{EntID,EntCorpName}"
PERSON_RESTRICT_TO = "{PerID,PerFstName,PerName,PerFctID}"


def _query_path(resource: str, filter_expression: str, restrict_to: str) -> str:
    return (
        f"/base/{resource}?filter={encode_component(filter_expression)}"
        f"&restrict_to={encode_component(restrict_to)}&nb_of_result={MAX_RESULTS}"
    )


def to_broker_opportunity(bean: dict[str, Any]) -> BrokerOpportunity:
    return BrokerOpportunity(
        enterprise_id=read_raw_text(bean, "OppEntID"),
        person_id=read_raw_text(bean, "OppPerID"),
        status_id=read_raw_text(bean, "OppStoID"),
        state_id=read_raw_text(bean, "OppStuID"),
        title=read_text(bean, "OppTitle"),
        date=read_text(bean, "OppDate"),
        reference=read_text(bean, "OppNumRef"),
        range_ids=read_id_list(bean, "OppGammeShouhaitee_"),
        probability_id=read_raw_text(bean, "OppOpbID"),
        protection_level_id=read_raw_text(bean, "OppNivSouhaite_"),
        insurance_scheme_id=read_raw_text(bean, "OppRegimeAssurance_"),
        stake=read_number(bean, "OppStake"),
        detail=read_text(bean, "OppDetail"),
    )


class BrokersService:
    def __init__(self, http: HttpClient) -> None:
        self.api = EfficyApiClient(http)
        self.referentials = ReferentialCache(self.api)

    async def resolve_current_broker_enterprise_id(self) -> str:
        person_id = await self.api.get_current_user_person_id()
        if not person_id:
            return ""

        person = await self.api.get_person_by_id(person_id)
        if person is None:
            return ""

        enterprise_ids = read_id_list(person, "PerEntID")
        if enterprise_ids:
            return enterprise_ids[0]
        return read_raw_text(person, "PerEntID")

    async def fetch_broker_opportunities(self, broker_enterprise_id: str) -> list[BrokerOpportunityWithDisplay]:
        if not broker_enterprise_id:
            return []

        response = await self.api.http.get(
            _query_path("Opportunity", "{{[OppCourtier_,=," + broker_enterprise_id + "]}}", OPPORTUNITY_RESTRICT_TO)
        )
        opportunities = [to_broker_opportunity(read_bean(row)) for row in read_query_rows(response)]
        return list(await asyncio.gather(*(self._with_display(opportunity) for opportunity in opportunities)))

    async def fetch_enterprises(self, broker_enterprise_id: str) -> list[BrokerEnterprise]:
        if not broker_enterprise_id:
            return []

        response = await self.api.http.get(
            _query_path("Enterprise", "{{[EntCourtier_,=," + broker_enterprise_id + "]}}", ENTERPRISE_RESTRICT_TO)
        )
        enterprises = []
        for row in read_query_rows(response):
            bean = read_bean(row)
            enterprise = BrokerEnterprise(id=read_raw_text(bean, "EntID"), name=read_text(bean, "EntCorpName"))
            if enterprise.id and enterprise.name:
                enterprises.append(enterprise)
        return enterprises

    async def fetch_persons_by_enterprise(self, enterprise_id: str) -> list[BrokerPerson]:
        if not enterprise_id:
            return []

        response = await self.api.http.get(
            _query_path("Person", "{{[PerEntID,=," + enterprise_id + "]}}", PERSON_RESTRICT_TO)
        )
        beans = [read_bean(row) for row in read_query_rows(response)]
        function_labels = await asyncio.gather(
            *(self.referentials.get_label("PerFctID", read_raw_text(bean, "PerFctID")) for bean in beans)
        )

        persons = []
        for bean, function_label in zip(beans, function_labels):
            name_parts = (read_text(bean, "PerFstName"), read_text(bean, "PerName"))
            person = BrokerPerson(
                id=read_raw_text(bean, "PerID"),
                name=" ".join(part for part in name_parts if part),
                function_label=function_label,
            )
            if person.id:
                persons.append(person)
        return persons

    async def fetch_opportunity_form_options(self) -> BrokerOpportunityFormOptions:
        states, probabilities, ranges = await asyncio.gather(
            self.referentials.to_options("OppStoID"),
            self.referentials.to_options("OppOpbID", label_field="nu1"),
            self.referentials.to_options("OppGammeShouhaitee_"),
        )
        return BrokerOpportunityFormOptions(states=states, probabilities=probabilities, ranges=ranges)

    async def create_opportunity(self, request: BrokerCreateOpportunityInput) -> None:
        await self.api.http.post(
            "/base/Opportunity",
            {
                "data": {
                    "bean_data": {
                        "OppTitle": request.title,
                        "OppDetail": request.detail,
                        "OppEntID": request.enterprise_id,
                        "OppPerID": request.person_id,
                        "OppStoID": request.state_id,
                        "OppOpbID": request.probability_id,
                        "OppDate": request.sign_date,
                        "OppStake": request.amount,
                        "OppGammeShouhaitee_": request.range_ids,
                        "OppCourtier_": request.broker_enterprise_id,
                    }
                }
            },
        )

    async def _with_display(self, opportunity: BrokerOpportunity) -> BrokerOpportunityWithDisplay:
        cache = self.referentials
        (
            enterprise_name,
            person_info,
            status_label,
            state_label,
            probability,
            protection_level_label,
            insurance_scheme_label,
            range_labels,
        ) = await asyncio.gather(
            cache.get_enterprise_name(opportunity.enterprise_id),
            cache.get_person_info(opportunity.person_id),
            cache.get_label("OppStoID", opportunity.status_id),
            cache.get_label("OppStuID", opportunity.state_id),
            cache.get_numeric_value("OppOpbID", opportunity.probability_id),
            cache.get_label("OppNivSouhaite_", opportunity.protection_level_id),
            cache.get_label("OppRegimeAssurance_", opportunity.insurance_scheme_id),
            asyncio.gather(*(cache.get_label("OppGammeShouhaitee_", range_id) for range_id in opportunity.range_ids)),
        )
        person_position = await cache.get_label("PerFctID", person_info.function_id)

        return BrokerOpportunityWithDisplay(
            **asdict(opportunity),
            enterprise_name=enterprise_name,
            person_name=person_info.name,
            person_position=person_position,
            status_label=status_label,
            state_label=state_label,
            range_labels=[label for label in range_labels if label],
            probability=probability,
            protection_level_label=protection_level_label,
            insurance_scheme_label=insurance_scheme_label,
        )
