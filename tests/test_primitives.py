"""
Field, Poseidon, Baby Jubjub and Poseidon-cipher tests
"""

import logging

import pytest

from primitives.babyjub import (
    BASE8,
    IDENTITY,
    SUB_ORDER,
    InvalidCurvePoint,
    Signature,
    add_point,
    derive_public_key,
    ecdh_shared_key,
    in_curve,
    mul_point_escalar,
    sign,
    verify,
)
from primitives.blake512 import blake512
from primitives.cipher import DecryptionFailure, poseidon_decrypt, poseidon_decrypt_without_check, poseidon_encrypt
from primitives.field import (
    NOTHING_UP_MY_SLEEVE,
    SNARK_FIELD_SIZE,
    InvalidFieldElement,
    SeededSaltSource,
    sha256_hash,
    to_field,
    to_field_elements,
)
from primitives.poseidon import hash2, hash4, hash5, hash13, hash_left_right, poseidon, poseidon_params

logger = logging.getLogger(__name__)


class TestField:

    def test_accepts_canonical_elements(self):
        assert to_field(0) == 0
        assert to_field(SNARK_FIELD_SIZE - 1) == SNARK_FIELD_SIZE - 1

    @pytest.mark.parametrize("value", [SNARK_FIELD_SIZE, SNARK_FIELD_SIZE + 5, -1])
    def test_rejects_out_of_range(self, value):
        with pytest.raises(InvalidFieldElement):
            to_field(value)

    @pytest.mark.parametrize("value", ["12", 1.5, None, True])
    def test_rejects_non_integers(self, value):
        with pytest.raises(InvalidFieldElement):
            to_field(value)

    def test_to_field_elements_reports_first_bad_value(self):
        with pytest.raises(InvalidFieldElement):
            to_field_elements([1, 2, SNARK_FIELD_SIZE])

    def test_nothing_up_my_sleeve_is_a_field_element(self):
        assert to_field(NOTHING_UP_MY_SLEEVE) == NOTHING_UP_MY_SLEEVE

    def test_sha256_hash_is_reduced_and_order_sensitive(self):
        a = sha256_hash([1, 2, 3])
        b = sha256_hash([3, 2, 1])
        assert 0 <= a < SNARK_FIELD_SIZE
        assert a != b
        assert sha256_hash([1, 2, 3]) == a

    def test_seeded_salt_source_is_reproducible(self):
        first = SeededSaltSource(3)
        second = SeededSaltSource(3)
        other = SeededSaltSource(4)
        salts = [first.next_salt() for _ in range(4)]
        assert salts == [second.next_salt() for _ in range(4)]
        assert salts != [other.next_salt() for _ in range(4)]
        assert len(set(salts)) == 4
        assert all(0 <= s < SNARK_FIELD_SIZE for s in salts)


class TestPoseidon:

    def test_params_shape(self):
        for width, partial in zip(range(2, 7), [56, 57, 56, 60, 60]):
            constants, mds = poseidon_params(width)
            assert len(constants) == width * (8 + partial)
            assert len(mds) == width
            assert all(len(row) == width for row in mds)
            assert all(0 <= c < SNARK_FIELD_SIZE for c in constants)

    def test_deterministic_and_input_sensitive(self):
        assert hash2(1, 2) == hash2(1, 2)
        assert hash2(1, 2) != hash2(2, 1)
        assert hash_left_right(1, 2) == hash2(1, 2)
        assert poseidon([1, 2, 3, 4]) == hash4([1, 2, 3, 4])
        assert hash5([1, 2, 3, 4, 5]) != hash5([1, 2, 3, 4, 6])

    def test_rejects_unsupported_widths(self):
        with pytest.raises(ValueError):
            poseidon([])
        with pytest.raises(ValueError):
            poseidon(list(range(6)))

    def test_rejects_non_field_inputs(self):
        with pytest.raises(InvalidFieldElement):
            hash2(SNARK_FIELD_SIZE, 0)

    @pytest.mark.parametrize("inputs,expected", [
        ([1], 18586133768512220936620570745912940619677854269274689475585506675881198879027),
        ([1, 2], 0x115cc0f5e7d690413df64c6b9662e9cf2a3617f2743245519e19607a4417189a),
        ([1, 2, 3], 6542985608222806190361240322586112750744169038454362455181422643027100751666),
        ([1, 2, 3, 4], 0x299c867db6c1fdd79dcefa40e4510b9837e60ebb1ce0663dbaa525df65250465),
        ([1, 2, 3, 4, 5], 6183221330272524995739186171720101788151706631170188140075976616310159254464),
    ])
    def test_matches_circomlib(self, inputs, expected):
        assert poseidon(inputs) == expected

    def test_hash13_layout(self):
        elements = list(range(1, 14))
        expected = poseidon([1, poseidon([2, 3, 4, 5, 6]), poseidon([7, 8, 9, 10, 11]), 12, 13])
        assert hash13(elements) == expected
        assert hash13([1, 2]) == poseidon([1, poseidon([2, 0, 0, 0, 0]), poseidon([0] * 5), 0, 0])

    def test_hash13(self):
        elements = list(range(1, 13))
        assert hash13(elements) == hash13(list(elements))
        assert hash13(elements) != hash13(elements[:-1] + [0])
        with pytest.raises(ValueError):
            hash13(list(range(14)))


class TestBlake512:

    def test_empty_message(self):
        assert blake512(b"").hex() == (
            "a8cfbbd73726062df0c6864dda65defe58ef0cc52a5625090fa17601e1eecd1b"
            "628e94f396ae402a00acc9eab77b4d4c2e852aaaa25a636d80af3fc7913ef5b8")

    def test_single_zero_byte(self):
        assert blake512(b"\x00").hex() == (
            "97961587f6d970faba6d2478045de6d1fabd09b61ae50932054d52bc29d31be4"
            "ff9102b9f69e2bbdb83be13d4b9c06091e5fa0b48bd081b634058be0ec49beb3")

    def test_two_block_message(self):
        assert blake512(bytes(144)).hex() == (
            "313717d608e9cf758dcb1eb0f0c3cf9fc150b2d500fb33f51c52afc99d358a2f"
            "1374b8a38bba7974e7f6ef79cab16f22ce1e649d6e01ad9589c213045d545dde")

    @pytest.mark.parametrize("length", [111, 112, 127, 128])
    def test_padding_boundaries(self, length):
        digest = blake512(bytes(length))
        assert len(digest) == 64
        assert digest != blake512(bytes(length + 1))


class TestBabyJub:

    def test_base_point_and_identity(self):
        assert in_curve(BASE8)
        assert in_curve(IDENTITY)
        assert not in_curve((1, 1))
        assert add_point(BASE8, IDENTITY) == BASE8
        assert mul_point_escalar(BASE8, SUB_ORDER) == IDENTITY

    # circomlib EdDSA vector: 32-byte key 0x00010203..., message bytes 00..09 read little-endian
    CIRCOMLIB_KEY = 0x0001020304050607080900010203040506070809000102030405060708090001
    CIRCOMLIB_MESSAGE = int.from_bytes(bytes.fromhex("000102030405060708090000"), "little")

    def test_public_key_matches_circomlib(self):
        assert derive_public_key(self.CIRCOMLIB_KEY) == (
            13277427435165878497778222415993513565335242147425444199013288855685581939618,
            13622229784656158136036771217484571176836296686641868549125388198837476602820,
        )

    def test_signature_matches_circomlib(self):
        signature = sign(self.CIRCOMLIB_KEY, self.CIRCOMLIB_MESSAGE)
        assert signature.r8 == (
            11384336176656855268977457483345535180380036354188103142384839473266348197733,
            15383486972088797283337779941324724402501462225528836549661220478783371668959,
        )
        assert signature.s == 1672775540645840396591609181675628451599263765380031905495115170613215233181
        assert verify(self.CIRCOMLIB_MESSAGE, signature, derive_public_key(self.CIRCOMLIB_KEY))

    def test_public_key_is_on_curve(self):
        assert in_curve(derive_public_key(123456789))

    def test_ecdh_is_symmetric(self):
        alice, bob = 1111, 2222
        shared_ab = ecdh_shared_key(alice, derive_public_key(bob))
        shared_ba = ecdh_shared_key(bob, derive_public_key(alice))
        assert shared_ab == shared_ba
        assert in_curve(shared_ab)

    def test_ecdh_rejects_off_curve_points(self):
        with pytest.raises(InvalidCurvePoint):
            ecdh_shared_key(1111, (1, 1))

    def test_sign_and_verify(self):
        private_key = 987654321
        public_key = derive_public_key(private_key)
        signature = sign(private_key, 42)

        assert verify(42, signature, public_key)
        assert not verify(43, signature, public_key)
        assert not verify(42, signature, derive_public_key(private_key + 1))

    def test_tampered_signature_fails(self):
        private_key = 5555
        public_key = derive_public_key(private_key)
        signature = sign(private_key, 7)
        tampered = Signature(r8=signature.r8, s=(signature.s + 1) % SUB_ORDER)
        assert not verify(7, tampered, public_key)
        assert not verify(7, Signature(r8=(1, 1), s=signature.s), public_key)
        assert not verify(7, Signature(r8=signature.r8, s=SUB_ORDER), public_key)


class TestPoseidonCipher:

    KEY = ecdh_shared_key(31337, derive_public_key(4242))

    def test_round_trip(self):
        plaintext = [1, 2, 3, 4, 5, 6, 7]
        ciphertext = poseidon_encrypt(plaintext, self.KEY, 0)
        assert len(ciphertext) == 10
        assert poseidon_decrypt(ciphertext, self.KEY, 0, len(plaintext)) == plaintext

    def test_wrong_key_fails(self):
        ciphertext = poseidon_encrypt([9, 8, 7], self.KEY, 0)
        other_key = ecdh_shared_key(1, derive_public_key(2))
        with pytest.raises(DecryptionFailure):
            poseidon_decrypt(ciphertext, other_key, 0, 3)

    def test_tampered_ciphertext_fails(self):
        ciphertext = poseidon_encrypt([9, 8, 7], self.KEY, 0)
        ciphertext[0] = (ciphertext[0] + 1) % SNARK_FIELD_SIZE
        with pytest.raises(DecryptionFailure):
            poseidon_decrypt(ciphertext, self.KEY, 0, 3)

    def test_forced_decryption_never_raises(self):
        ciphertext = poseidon_encrypt([9, 8, 7], self.KEY, 0)
        other_key = ecdh_shared_key(1, derive_public_key(2))
        garbage = poseidon_decrypt_without_check(ciphertext, other_key, 0, 3)
        assert len(garbage) == 3
        assert garbage != [9, 8, 7]
