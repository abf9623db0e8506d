"""Shared fixtures: a small Superstore-style workbook."""

import pytest
from lxml import etree

from twb_lineage.config import Settings
from twb_lineage.extractors.xml_extractor import parse_workbook
from twb_lineage.session import WorkbookSession

SAMPLE_TWB = """<?xml version='1.0' encoding='utf-8' ?>
<workbook source-build='2023.1.0 (20231.23.0310.1045)' version='18.1'>
  <datasources>
    <datasource hasconnection='false' inline='true' name='Parameters' version='18.1'>
      <column caption='Growth Rate' datatype='real' name='[Parameter 1]' param-domain-type='range' role='measure' type='quantitative' value='0.05'>
        <calculation class='tableau' formula='0.05' />
      </column>
    </datasource>
    <datasource caption='Superstore' inline='true' name='federated.0a1b2c3' version='18.1'>
      <connection class='federated'>
        <named-connections>
          <named-connection caption='localhost' name='postgres.1'>
            <connection class='postgres' dbname='sales' server='localhost' />
          </named-connection>
        </named-connections>
      </connection>
      <column caption='Sales' datatype='real' name='[Sales]' role='measure' type='quantitative' default-aggregation='sum' />
      <column caption='Profit' datatype='real' name='[Profit]' role='measure' type='quantitative' />
      <column caption='Region' datatype='string' name='[Region]' role='dimension' type='nominal' />
      <column caption='Order Date' datatype='date' name='[Order Date]' role='dimension' type='ordinal' />
      <column caption='Profit' datatype='real' name='[Calculation_1]' role='measure' type='quantitative'>
        <calculation class='tableau' formula='[Profit] * (1 + [Parameters].[Parameter 1])' />
      </column>
      <column caption='Projected Sales' datatype='real' name='[Calculation_2]' role='measure' type='quantitative'>
        <calculation class='tableau' formula='[Sales] * (1 + [:Growth Rate])' />
      </column>
      <column caption='Region Sales' datatype='real' name='[Calculation_3]' role='measure' type='quantitative'>
        <calculation class='tableau' formula='{FIXED [Region] : SUM([Sales])}' />
      </column>
      <column caption='Running Profit' datatype='real' name='[Calculation_4]' role='measure' type='quantitative'>
        <calculation class='tableau' formula='RUNNING_SUM(SUM([Calculation_1]))' />
      </column>
    </datasource>
  </datasources>
  <worksheets>
    <worksheet name='Sales by Region'>
      <table>
        <view>
          <datasources>
            <datasource caption='Superstore' name='federated.0a1b2c3' />
          </datasources>
          <datasource-dependencies datasource='federated.0a1b2c3'>
            <column caption='Region' datatype='string' name='[Region]' role='dimension' />
            <column caption='Sales' datatype='real' name='[Sales]' role='measure' />
          </datasource-dependencies>
        </view>
      </table>
    </worksheet>
    <worksheet name='Profit Trend'>
      <table>
        <view>
          <datasource-dependencies datasource='federated.0a1b2c3'>
            <column caption='Profit' name='[Calculation_1]' />
            <column caption='Running Profit' name='[Calculation_4]' />
          </datasource-dependencies>
          <column caption='Order Date' name='[Order Date]' />
        </view>
      </table>
    </worksheet>
  </worksheets>
  <dashboards>
    <dashboard name='Overview'>
      <zones>
        <zone id='1' type-v2='layout-basic'>
          <zone id='2' name='Sales by Region' />
          <zone id='3' name='Profit Trend' />
          <zone id='4' type-v2='text' name='Header' />
        </zone>
      </zones>
    </dashboard>
    <dashboard name='Detail'>
      <worksheet name='Profit Trend' />
      <zones>
        <zone id='5' name='Profit Trend' />
      </zones>
    </dashboard>
  </dashboards>
</workbook>
"""

CYCLIC_TWB = """<?xml version='1.0' encoding='utf-8' ?>
<workbook version='18.1'>
  <datasources>
    <datasource caption='Loop' name='loop.1'>
      <column caption='A' datatype='real' name='[Calc_A]'>
        <calculation class='tableau' formula='[B] + 1' />
      </column>
      <column caption='B' datatype='real' name='[Calc_B]'>
        <calculation class='tableau' formula='[C] + 1' />
      </column>
      <column caption='C' datatype='real' name='[Calc_C]'>
        <calculation class='tableau' formula='[A] + 1' />
      </column>
    </datasource>
  </datasources>
</workbook>
"""


def parse_xml(text: str) -> etree._Element:
    return etree.fromstring(text.encode("utf-8"))


@pytest.fixture
def settings():
    return Settings()


@pytest.fixture
def workbook_root():
    return parse_xml(SAMPLE_TWB)


@pytest.fixture
def metadata(workbook_root):
    return parse_workbook(workbook_root, workbook_name="Superstore")


@pytest.fixture
def session(metadata, settings):
    return WorkbookSession.from_metadata(metadata, settings)


@pytest.fixture
def twb_file(tmp_path):
    path = tmp_path / "Superstore.twb"
    path.write_text(SAMPLE_TWB, encoding="utf-8")
    return path
