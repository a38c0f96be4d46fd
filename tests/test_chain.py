from unittest.mock import MagicMock

import pytest
from web3 import Web3

from chain import TRANSFER_TOPIC, ChainClient, ChainConfigError, to_checksum, validate_rpc_url

CONTRACT = "0x1234567890abcdef1234567890abcdef12345678"


def test_transfer_topic_is_keccak_of_signature():
    assert Web3.to_hex(Web3.keccak(text="Transfer(address,address,uint256)")) == TRANSFER_TOPIC


@pytest.mark.parametrize("url", ["", "polygon-rpc.com", "ftp://polygon-rpc.com", "https://"])
def test_invalid_rpc_url(url):
    with pytest.raises(ChainConfigError):
        validate_rpc_url(url)


def test_invalid_contract_address():
    with pytest.raises(ChainConfigError):
        to_checksum("0x123")


def test_client_delegates_to_web3():
    client = ChainClient("https://polygon-rpc.com/")
    client.w3 = MagicMock()
    client.w3.eth.block_number = 123
    client.w3.eth.get_logs.return_value = [{"logIndex": 0}]
    client.w3.eth.get_block.return_value = {"timestamp": 1700000000}

    assert client.current_height() == 123
    assert client.get_logs(CONTRACT, [TRANSFER_TOPIC], 5, 6) == [{"logIndex": 0}]
    assert client.get_block_timestamp(5) == 1700000000

    params = client.w3.eth.get_logs.call_args[0][0]
    assert params == {
        "fromBlock": 5,
        "toBlock": 6,
        "address": Web3.to_checksum_address(CONTRACT),
        "topics": [TRANSFER_TOPIC],
    }


def test_transport_errors_propagate():
    client = ChainClient("http://localhost:8545")
    client.w3 = MagicMock()
    client.w3.eth.get_block.side_effect = ConnectionError("down")
    with pytest.raises(ConnectionError):
        client.get_block_timestamp(1)
