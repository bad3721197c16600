import email
import os
import shlex
import threading
import time

import mock

from gpgmime.crypto.manager import CryptoManager, OUTGOING_MESSAGE_OPERATIONS
from gpgmime.crypto.state import BinaryUnavailable, CommandFailure
from gpgmime.crypto.state import CryptoError, CryptoResult
from gpgmime.tests import GpgMimeUnittest, parse_args
from gpgmime.tests import PLAIN_MESSAGE, ARMORED_SIGNATURE, ARMORED_MESSAGE


GOOD_SIG = 'gpg: Good signature from "Alice <alice@example.com>"'
UTF8_PART = (
    'MIME-Version: 1.0\n'
    'Content-Type: text/plain; charset="utf-8"\n'
    'Content-Transfer-Encoding: 8bit\n'
    '\n'
    'Grüße aus Köln\n').encode('utf-8')


class CryptoManagerTest(GpgMimeUnittest):
    def payload(self):
        return email.message_from_string(PLAIN_MESSAGE)


class TestSign(CryptoManagerTest):
    def test_sign(self):
        fake = self.fake_gpg(data=ARMORED_SIGNATURE.encode())
        payload = self.payload()
        result = self.crypto.sign('alice@example.com', ['bob@example.com'],
                                  payload)

        self.assertTrue(result.ok)
        self.assertEqual(result.operation, 'sign')
        env = result.envelope
        self.assertEqual(env.get_content_type(), 'multipart/signed')
        self.assertEqual(env.get_payload(0).get_payload(),
                         payload.get_payload())
        self.assertNotIn('MIME-Version', env.get_payload(0))
        self.assertIn('MIME-Version', payload)
        self.assertEqual(env.get_payload(1).get_payload(), ARMORED_SIGNATURE)

        args, interactive = fake.calls[0]
        self.assertTrue(interactive)
        opts, files = parse_args(args)
        self.assertEqual(opts['--local-user'], ['alice@example.com'])
        for flag in ('--yes', '--armor', '--detach-sign', '--textmode'):
            self.assertIn(flag, opts)
        self.assertNotIn('--recipient', opts)
        self.assertEqual(len(files), 1)

    def test_sign_input_is_formatted(self):
        fake = self.fake_gpg(data=ARMORED_SIGNATURE.encode())
        self.crypto.sign('alice@example.com', [], self.payload())
        signed = fake.inputs[0]
        self.assertNotIn(b'MIME-Version', signed)
        self.assertIn(b'Hello world!\r\nFrom the other side.\r\n', signed)
        self.assertEqual(signed.count(b"\n"), signed.count(b"\r\n"))

    def test_signed_bytes_match_envelope(self):
        fake = self.fake_gpg(data=ARMORED_SIGNATURE.encode())
        payload = email.message_from_bytes(UTF8_PART)
        env = self.crypto.sign('alice@example.com', [], payload).envelope

        wire = env.as_bytes()
        boundary = ('--%s' % env.get_boundary()).encode()
        start = wire.index(boundary + b'\n') + len(boundary) + 1
        end = wire.index(b'\n' + boundary, start)
        first_part = wire[start:end]
        self.assertIn('Grüße aus Köln'.encode('utf-8'), first_part)
        self.assertEqual(fake.inputs[0],
                         first_part.replace(b'\n', b'\r\n'))

    def test_sign_failure(self):
        self.fake_gpg(output='gpg: no default secret key', success=False)
        result = self.crypto.sign('alice@example.com', [], self.payload())
        self.assertFalse(result.ok)
        self.assertIsNone(result.envelope)
        self.assertIsInstance(result.error, CommandFailure)
        self.assertEqual(result.error.output, 'gpg: no default secret key')
        self.assertRaises(CommandFailure, result.raise_for_error)
        self.assertTrue([m for m in self.logged(self.session.ui.LOG_ERROR)
                         if 'no default secret key' in m])

    def test_temp_files_removed(self):
        fake = self.fake_gpg(data=ARMORED_SIGNATURE.encode())
        self.crypto.sign('alice@example.com', [], self.payload())
        opts, files = parse_args(fake.last_args)
        for fn in files + opts['--output']:
            self.assertFalse(os.path.exists(fn))

    def test_quoting(self):
        fake = self.fake_gpg(data=ARMORED_SIGNATURE.encode())
        self.crypto.sign("O'Brien <ob@example.com>", [], self.payload())
        argv = shlex.split(fake.last_args)
        self.assertIn("O'Brien <ob@example.com>", argv)


class TestEncrypt(CryptoManagerTest):
    def test_encrypt(self):
        fake = self.fake_gpg(data=ARMORED_MESSAGE.encode())
        result = self.crypto.encrypt('alice@example.com',
                                     ['bob@example.com', 'carol@example.com'],
                                     self.payload())
        self.assertTrue(result.ok)
        self.assertEqual(result.operation, 'encrypt')

        env = result.envelope
        self.assertEqual(env.get_content_type(), 'multipart/encrypted')
        control, data = env.get_payload()
        self.assertEqual(control.get_payload(), 'Version: 1\n')
        self.assertEqual(data.get_payload(), ARMORED_MESSAGE)

        args, interactive = fake.calls[0]
        self.assertTrue(interactive)
        opts, files = parse_args(args)
        self.assertEqual(opts['--recipient'], ['<bob@example.com>',
                                               '<carol@example.com>',
                                               '<alice@example.com>'])
        self.assertNotIn('--sign', opts)
        self.assertNotIn('--local-user', opts)
        for flag in ('--yes', '--armor', '--encrypt', '--textmode'):
            self.assertIn(flag, opts)

    def test_sign_and_encrypt(self):
        fake = self.fake_gpg(data=ARMORED_MESSAGE.encode())
        result = self.crypto.sign_and_encrypt('alice@example.com',
                                              ['bob@example.com'],
                                              self.payload())
        self.assertTrue(result.ok)
        self.assertEqual(result.operation, 'sign_and_encrypt')
        opts, files = parse_args(fake.last_args)
        self.assertIn('--sign', opts)
        self.assertEqual(opts['--local-user'], ['alice@example.com'])
        self.assertEqual(opts['--recipient'], ['<bob@example.com>',
                                               '<alice@example.com>'])

    def test_encrypt_failure(self):
        self.fake_gpg(output='gpg: bob@example.com: skipped: No public key',
                      success=False)
        result = self.crypto.encrypt('alice@example.com', ['bob@example.com'],
                                     self.payload())
        self.assertIsInstance(result.error, CommandFailure)
        self.assertIn('No public key', result.error.output)
        self.assertIsNone(result.envelope)

    def test_not_interactive(self):
        self.config.prefs.gpg_interactive = False
        fake = self.fake_gpg(data=ARMORED_MESSAGE.encode())
        self.crypto.encrypt('alice@example.com', [], self.payload())
        self.assertFalse(fake.calls[0][1])


class TestVerify(CryptoManagerTest):
    def signature(self, data=ARMORED_SIGNATURE):
        return email.message_from_string(
            'Content-Type: application/pgp-signature\n\n' + data)

    def test_verify_good(self):
        fake = self.fake_gpg(output=GOOD_SIG)
        result = self.crypto.verify(self.payload(), self.signature())
        self.assertTrue(result.ok)
        self.assertEqual(result.notice.status, 'valid')
        self.assertEqual(result.notice.description,
                         'Good signature from "Alice <alice@example.com>"')
        self.assertEqual(result.notice.lines, [GOOD_SIG])

        args, interactive = fake.calls[0]
        self.assertFalse(interactive)
        self.assertTrue(args.startswith('--verify '))
        sig, signed = fake.inputs
        self.assertEqual(sig, ARMORED_SIGNATURE.encode())
        self.assertNotIn(b'MIME-Version', signed)
        self.assertIn(b'\r\n', signed)

    def test_verify_bad(self):
        self.fake_gpg(output='gpg: BAD signature from "Alice"', success=False)
        result = self.crypto.verify(self.payload(), self.signature())
        self.assertEqual(result.notice.status, 'invalid')
        self.assertIsInstance(result.error, CommandFailure)

    def test_verify_unknown(self):
        self.fake_gpg(output="gpg: Can't check signature: No public key",
                      success=False)
        result = self.crypto.verify(self.payload(), self.signature())
        self.assertEqual(result.notice.status, 'unknown')
        self.assertEqual(result.notice.description,
                         'Unable to determine validity of cryptographic '
                         'signature')
        self.assertEqual(result.notice.lines,
                         ["gpg: Can't check signature: No public key"])

    def test_verify_base64_signature(self):
        fake = self.fake_gpg(output=GOOD_SIG)
        sig = email.message_from_string(
            'Content-Type: application/pgp-signature\n'
            'Content-Transfer-Encoding: base64\n'
            '\n'
            'c2lnbmF0dXJl\n')
        self.crypto.verify(self.payload(), sig)
        self.assertEqual(fake.inputs[0], b'signature')


class TestDecrypt(CryptoManagerTest):
    CLEARTEXT = (b'Content-Type: text/plain; charset=utf-8\n'
                 b'\n'
                 b'Attack at dawn.\n')

    def ciphertext(self):
        return email.message_from_string(
            'Content-Type: application/octet-stream\n\n' + ARMORED_MESSAGE)

    def test_decrypt(self):
        fake = self.fake_gpg(output='gpg: encrypted with RSA key',
                             data=self.CLEARTEXT)
        result = self.crypto.decrypt(self.ciphertext())
        self.assertTrue(result.ok)
        self.assertEqual(result.notice.status, 'valid')
        self.assertEqual(result.notice.description,
                         'This message has been decrypted for display')
        self.assertEqual(result.notice.lines, [])
        self.assertIsNone(result.signature)
        self.assertEqual(result.message.get_payload(), 'Attack at dawn.\n')

        args, interactive = fake.calls[0]
        self.assertTrue(interactive)
        opts, files = parse_args(args)
        self.assertIn('--decrypt', opts)
        self.assertIn('--yes', opts)

    def test_decrypt_input_not_formatted(self):
        fake = self.fake_gpg(data=self.CLEARTEXT)
        self.crypto.decrypt(self.ciphertext())
        self.assertNotIn(b'\r\n', fake.inputs[0])
        self.assertIn(b'-----BEGIN PGP MESSAGE-----\n', fake.inputs[0])

    def test_decrypt_signed(self):
        self.fake_gpg(output='gpg: encrypted with RSA key\n' + GOOD_SIG,
                      data=self.CLEARTEXT)
        result = self.crypto.decrypt(self.ciphertext())
        self.assertEqual(result.signature.status, 'valid')
        self.assertEqual(result.signature.lines[-1], GOOD_SIG)
        self.assertEqual(len(result.notices()), 2)

    def test_decrypt_bad_signature(self):
        self.fake_gpg(output='gpg: BAD signature from "Mallory"',
                      data=self.CLEARTEXT)
        result = self.crypto.decrypt(self.ciphertext())
        self.assertEqual(result.signature.status, 'invalid')

    def test_decrypt_failure(self):
        self.fake_gpg(output='gpg: decryption failed: No secret key',
                      success=False)
        result = self.crypto.decrypt(self.ciphertext())
        self.assertFalse(result.ok)
        self.assertIsInstance(result.error, CommandFailure)
        self.assertEqual(result.notice.status, 'invalid')
        self.assertEqual(result.notice.description,
                         'This message could not be decrypted')
        self.assertEqual(result.notice.lines,
                         ['gpg: decryption failed: No secret key'])
        self.assertIsNone(result.message)
        self.assertIsNone(result.signature)

    def test_decrypt_output_with_trailing_newline(self):
        self.fake_gpg(output='gpg: decryption failed: No secret key\n',
                      success=False)
        result = self.crypto.decrypt(self.ciphertext())
        self.assertEqual(result.notice.lines,
                         ['gpg: decryption failed: No secret key'])

        self.fake_gpg(output='gpg: encrypted with RSA key\n%s\n' % GOOD_SIG,
                      data=self.CLEARTEXT)
        result = self.crypto.decrypt(self.ciphertext())
        self.assertEqual(result.signature.lines[-1], GOOD_SIG)

    def test_decrypt_uses_parser(self):
        parser = mock.Mock(return_value=email.message_from_bytes(
            self.CLEARTEXT))
        crypto = self.make_manager(parser=parser)
        self.fake_gpg(crypto=crypto, data=self.CLEARTEXT)
        result = crypto.decrypt(self.ciphertext())
        parser.assert_called_once_with(self.CLEARTEXT)
        self.assertIs(result.message, parser.return_value)


class TestMissingBinary(CryptoManagerTest):
    def setUp(self):
        CryptoManagerTest.setUp(self)
        self.crypto = self.make_manager(binary=None)

    def test_have_crypto(self):
        self.assertFalse(self.crypto.have_crypto())

    def test_verify_and_decrypt(self):
        with mock.patch('gpgmime.crypto.gpgi.Popen') as popen:
            for result in (
                    self.crypto.verify(self.payload(), self.payload()),
                    self.crypto.decrypt(self.payload())):
                self.assertEqual(result.notice.status, 'unknown')
                self.assertEqual(result.notice.description,
                                 "Can't find gpg binary in path.")
                self.assertEqual(result.notice.lines,
                                 ["Can't find gpg binary in path."])
                self.assertIsInstance(result.error, BinaryUnavailable)
        self.assertFalse(popen.called)

    def test_outgoing(self):
        with mock.patch('gpgmime.crypto.gpgi.Popen') as popen:
            for op in ('sign', 'encrypt', 'sign_and_encrypt'):
                result = getattr(self.crypto, op)(
                    'alice@example.com', ['bob@example.com'], self.payload())
                self.assertEqual(result.operation, op)
                self.assertIsNone(result.envelope)
                self.assertIsInstance(result.error, BinaryUnavailable)
                self.assertRaises(BinaryUnavailable, result.raise_for_error)
        self.assertFalse(popen.called)


class TestManager(CryptoManagerTest):
    def test_have_crypto(self):
        self.assertTrue(self.crypto.have_crypto())

    def test_outgoing_operations(self):
        self.assertEqual(list(OUTGOING_MESSAGE_OPERATIONS.items()),
                         [('sign', 'Sign'),
                          ('sign_and_encrypt', 'Sign and encrypt'),
                          ('encrypt', 'Encrypt only')])

    def test_run_operation(self):
        self.fake_gpg(data=ARMORED_SIGNATURE.encode())
        result = self.crypto.run_operation('sign', 'alice@example.com', [],
                                           self.payload())
        self.assertEqual(result.envelope.get_content_type(),
                         'multipart/signed')
        self.assertRaises(CryptoError, self.crypto.run_operation, 'nuke')
        self.assertRaises(CryptoError, self.crypto.run_operation, 'gnupg')

    def test_result_repr(self):
        result = CryptoResult('verify', notice=None)
        self.assertIn('verify', repr(result))
        self.assertIs(result.raise_for_error(), result)

    def test_lock_held_during_run(self):
        held = []

        def check_lock(args, interactive=False):
            # Another thread must not be able to take the lock now.
            t = threading.Thread(
                target=lambda: held.append(
                    not self.crypto._lock.acquire(blocking=False)))
            t.start()
            t.join()
            return GOOD_SIG, True

        with mock.patch.object(self.crypto.gnupg, 'run_gpg',
                               side_effect=check_lock):
            self.crypto.verify(self.payload(), self.payload())
        self.assertEqual(held, [True])

    def test_operations_serialized(self):
        active, overlaps = [0], []
        gate = threading.Lock()

        def slow(args, interactive=False):
            with gate:
                active[0] += 1
                overlaps.append(active[0])
            time.sleep(0.01)
            with gate:
                active[0] -= 1
            return GOOD_SIG, True

        with mock.patch.object(self.crypto.gnupg, 'run_gpg',
                               side_effect=slow):
            threads = [threading.Thread(
                target=self.crypto.verify,
                args=(self.payload(), self.payload())) for i in range(5)]
            for t in threads:
                t.start()
            for t in threads:
                t.join()
        self.assertEqual(overlaps, [1, 1, 1, 1, 1])

    def test_default_session(self):
        with mock.patch('gpgmime.crypto.gpgi.GetDefaultGnuPGCommand',
                        return_value=None):
            crypto = CryptoManager()
        self.assertFalse(crypto.have_crypto())
        result = crypto.verify(self.payload(), self.payload())
        self.assertEqual(result.notice.status, 'unknown')
